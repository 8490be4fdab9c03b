import logging
import os

from knowbase import create_app

app = create_app()

if __name__ == "__main__":
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8000"))
    debug = os.getenv("DEBUG", "false").lower() == "true"
    logging.getLogger(__name__).info("server.start host=%s port=%s debug=%s", host, port, debug)
    app.run(host=host, port=port, debug=debug)
