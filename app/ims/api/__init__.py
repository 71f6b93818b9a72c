from app.ims.api.routes import bp

__all__ = ["bp"]
