from datetime import datetime
from fastapi import APIRouter, Depends, status, Request
from pydantic import BaseModel, EmailStr, Field, field_validator
from motor.motor_asyncio import AsyncIOMotorDatabase
from ..db import get_db
from ..errors import AuthRequired, Conflict
from ..security import hash_password, verify_password, create_access_token
from ..utils import new_id
from ..middleware.rate_limit import apply_rate_limit
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


def validate_password_strength(password: str) -> str:
    """Al menos 6 caracteres y como mucho 72 (límite de bcrypt)"""
    if len(password) < 6:
        raise ValueError("La contraseña debe tener al menos 6 caracteres")
    if len(password) > 72:
        raise ValueError("La contraseña no puede exceder 72 caracteres")
    if password.isdigit() or password.isalpha():
        logger.warning("Contraseña débil detectada (solo números o solo letras)")
    return password


class Signup(BaseModel):
    display_name: str = Field(..., min_length=1, max_length=50, description="Nombre visible")
    email: EmailStr = Field(..., description="Email válido")
    password: str = Field(..., min_length=6, max_length=72, description="Contraseña (mín. 6 caracteres)")

    @field_validator('password')
    @classmethod
    def validate_password(cls, v: str) -> str:
        return validate_password_strength(v)


class Login(BaseModel):
    email: EmailStr = Field(..., description="Email del usuario")
    password: str = Field(..., min_length=1, description="Contraseña")


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(request: Request, payload: Signup, db: AsyncIOMotorDatabase = Depends(get_db)):
    # Rate limiting: máximo 5 registros por minuto por IP
    apply_rate_limit(request, "5/minute")

    exists = await db.users.find_one({"email": payload.email})
    if exists:
        raise Conflict("Email ya registrado")

    user_id = new_id()
    await db.users.insert_one({
        "_id": user_id,
        "email": payload.email,
        "display_name": payload.display_name,
        "password_hash": hash_password(payload.password),
        "created_at": datetime.utcnow(),
    })
    logger.info(f"Usuario registrado: {user_id}")
    return {"id": user_id, "email": payload.email, "displayName": payload.display_name}


@router.post("/login")
async def login(request: Request, payload: Login, db: AsyncIOMotorDatabase = Depends(get_db)):
    # Rate limiting: máximo 10 intentos de login por minuto por IP
    apply_rate_limit(request, "10/minute")

    user = await db.users.find_one({"email": payload.email})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        raise AuthRequired("Credenciales inválidas")
    await db.users.update_one({"_id": user["_id"]}, {"$set": {"last_login_at": datetime.utcnow()}})
    token = create_access_token(str(user["_id"]))
    return {"access_token": token, "token_type": "bearer"}
