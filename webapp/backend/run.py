import os
import sys
from pathlib import Path

import uvicorn

BACKEND = Path(__file__).resolve().parent
sys.path.insert(0, str(BACKEND))
sys.path.insert(0, str(BACKEND.parent.parent))

if __name__ == "__main__":
    # workers=1: the default SQLite file does not take concurrent writers well
    from main import app
    uvicorn.run(
        app,
        host=os.environ.get("ROTA_HOST", "0.0.0.0"),
        port=int(os.environ.get("ROTA_PORT", "8000")),
        workers=1,
    )
