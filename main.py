import os

import uvicorn


def run_backend():
    uvicorn.run(
        "neodrive.main:app",
        host=os.getenv("NEODRIVE_HOST", "0.0.0.0"),
        port=int(os.getenv("NEODRIVE_PORT", "8000")),
        reload=False
    )


if __name__ == "__main__":
    run_backend()
