"""qrshare: ephemeral QR-paired file sharing over WebSockets."""

__version__ = "0.1.0"
