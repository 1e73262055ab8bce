"""WSGI entry point serving the REST API and the Socket.IO endpoint together."""

import os

import socketio

from todo_app import create_app
from todo_app.realtime.socket_server import create_socket_server

app = create_app(os.getenv("FLASK_ENV", "production"))
sio = create_socket_server(app)
application = socketio.WSGIApp(sio, app)
