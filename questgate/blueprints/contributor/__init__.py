from .routes import contributor_bp

__all__ = ["contributor_bp"]
