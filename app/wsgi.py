from app.exhibit import create_app

app = create_app()
