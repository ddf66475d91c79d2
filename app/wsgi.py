from app.doctrack import create_app

app = create_app()
