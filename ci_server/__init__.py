"""
CI Server module.

This module contains the HTTP gateway that receives Event Grid and
CloudEvents deliveries and feeds them to the controller's event router.
The FastAPI app lives in ci_server.app.
"""
