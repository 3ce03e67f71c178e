# backend/app/api/users.py
from fastapi import APIRouter

router = APIRouter()


@router.get("/")
def users_root():
    """Router par défaut, remplacé en déploiement via USERS_ROUTER"""
    return {"message": "Users endpoints", "resource": "users"}
