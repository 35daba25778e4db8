from app.duxa import create_app

app = create_app()
