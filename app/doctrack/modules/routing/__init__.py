"""
Document routing: dual status model, role authorizer, transition executor,
revision engine, QR carrier, persistence gateway and JSON API.
"""
