"""
collective_node/app.py
----------------------
Thin entrypoint for running the pool API via:

    uvicorn collective_node.app:app

All real route wiring lives in collective_node.collective_api.
"""

from .collective_api import app as app  # re-export for uvicorn


if __name__ == "__main__":
    # Convenience for: python -m collective_node.app
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8000)
