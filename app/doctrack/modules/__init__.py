"""Feature modules. Each module keeps its models, service and blueprint together."""
