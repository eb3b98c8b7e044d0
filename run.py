"""
MindTrack Clinic Server — Entry Point
"""
import platform
import uvicorn

from mindtrack import settings

if __name__ == "__main__":
    if platform.system() == "Windows":
        uvicorn.run("mindtrack.app:app", host="0.0.0.0", port=settings.PORT, log_level="info", loop="asyncio")
    else:
        uvicorn.run("mindtrack.app:app", host="0.0.0.0", port=settings.PORT, log_level="info")
