"""API Dependencies - Authentication and result mapping"""
from fastapi import Depends, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from domain.auth import User, UserInDB
from domain.enums import UserRole
from domain.results import Result
from infrastructure.security import decode_access_token, get_password_hash
from api.schemas import TokenData

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")

# Mock database for users, one per role
_fake_users_db = {
    "superadmin": {
        "username": "superadmin",
        "full_name": "Super Admin",
        "email": "superadmin@example.com",
        "plain_password": "superadmin123",
        "role": UserRole.SUPERADMIN,
        "disabled": False,
        "user_id": "123e4567-e89b-12d3-a456-426614174000"
    },
    "adminkos": {
        "username": "adminkos",
        "full_name": "Pemilik Kos",
        "email": "owner@example.com",
        "plain_password": "adminkos123",
        "role": UserRole.ADMINKOS,
        "disabled": False,
        "user_id": "123e4567-e89b-12d3-a456-426614174001"
    },
    "receptionist": {
        "username": "receptionist",
        "full_name": "Front Desk",
        "email": "frontdesk@example.com",
        "plain_password": "receptionist123",
        "role": UserRole.RECEPTIONIST,
        "disabled": False,
        "user_id": "123e4567-e89b-12d3-a456-426614174002"
    },
    "customer": {
        "username": "customer",
        "full_name": "Budi Santoso",
        "email": "budi@example.com",
        "phone_number": "081234567890",
        "plain_password": "customer123",
        "role": UserRole.CUSTOMER,
        "disabled": False,
        "user_id": "123e4567-e89b-12d3-a456-426614174003"
    },
    "customer2": {
        "username": "customer2",
        "full_name": "Siti Rahayu",
        "email": "siti@example.com",
        "plain_password": "customer123",
        "role": UserRole.CUSTOMER,
        "disabled": False,
        "user_id": "123e4567-e89b-12d3-a456-426614174004"
    },
}

fake_users_db = _fake_users_db

# Cache for hashed passwords
_password_hash_cache = {}

def _get_hashed_password(username: str) -> str:
    """Lazily hash passwords on first access"""
    if username not in _password_hash_cache:
        user = _fake_users_db.get(username)
        if user and "plain_password" in user:
            _password_hash_cache[username] = get_password_hash(user["plain_password"])
    return _password_hash_cache.get(username, "")

def get_user(db, username: str):
    if username in db:
        user_dict = db[username].copy()
        if "plain_password" in user_dict:
            user_dict["hashed_password"] = _get_hashed_password(username)
            del user_dict["plain_password"]
        return UserInDB(**user_dict)
    return None

async def get_current_user(token: str = Depends(oauth2_scheme)):
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_access_token(token)
        username: str = payload.get("sub")
        if username is None:
            raise credentials_exception
        token_data = TokenData(username=username, role=payload.get("role"))
    except JWTError:
        raise credentials_exception

    user = get_user(_fake_users_db, username=token_data.username)
    if user is None:
        raise credentials_exception
    return user

async def get_current_active_user(current_user: User = Depends(get_current_user)):
    if current_user.disabled:
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user

def require_roles(*roles: UserRole):
    """Dependency factory: 403 unless the caller has one of ``roles``"""
    async def checker(current_user: User = Depends(get_current_active_user)):
        if current_user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return current_user
    return checker

def unwrap(result: Result):
    """Return the data of a successful result, raise HTTPException otherwise"""
    if result.success:
        return result.data
    raise HTTPException(status_code=result.status_code, detail=result.error.model_dump())

def result_response(result: Result, data=None) -> JSONResponse:
    """Serialize a Result as the response body, using its status code"""
    body = {"success": result.success}
    if result.success:
        body["data"] = jsonable_encoder(data if data is not None else result.data)
    else:
        body["error"] = result.error.model_dump()
    return JSONResponse(status_code=result.status_code, content=body)
