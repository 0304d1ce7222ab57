import logging
import os

import uvicorn

if __name__ == "__main__":
    logging.basicConfig(
        level=os.environ.get("LIFEOS_LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    port = int(os.environ.get("LIFEOS_PORT", "8000"))

    print("Starting Life OS Dashboard API Server...")
    print(f"Docs available at: http://localhost:{port}/docs")

    uvicorn.run(
        "lifeos.api.server:app",
        host="0.0.0.0",
        port=port,
        reload=True
    )
