from fastapi import APIRouter

from existinfra import __version__

router = APIRouter()


@router.get("/healthz")
def healthz():
    return {"status": "ok", "version": __version__}
