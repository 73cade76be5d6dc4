from fastapi import APIRouter

router = APIRouter()

@router.get("/")
def root():
    return {
        "name": "Evaluation Cycle Engine",
        "status": "ok",
        "docs": "/docs",
        "health": "/health",
        "cycles": "/cycles",
    }
