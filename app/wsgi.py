from app.ims import create_app

app = create_app()
