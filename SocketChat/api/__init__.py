from .routes import create_app, run, serve

__all__ = ['create_app', 'run', 'serve']
