from . import create_app

# Instantiate the application at import time for WSGI servers
app = create_app()
