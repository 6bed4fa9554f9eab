# StackIt API entry point
# File: api/index.py (for Vercel deployment)

import os

from stackit import create_app
from stackit.realtime import socketio

app = create_app()

if __name__ == '__main__':
    socketio.run(app, host='0.0.0.0', port=int(os.environ.get('PORT', 5000)))
