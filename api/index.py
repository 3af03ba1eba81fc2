import os
import sys

# Add parent directory to path to import app
sys.path.insert(1, os.path.join(sys.path[0], '..'))
from app import create_app

# Vercel's Python runtime serves the WSGI callable named ``app``
app = create_app()
