from pydantic import BaseModel, EmailStr, ConfigDict, Field
from typing import Optional

# Shared properties for user models
class UserBase(BaseModel):
    email: EmailStr

# Credentials posted to /login
class UserLogin(UserBase):
    password: str

# Self-service registration always creates a customer account
class UserCreate(UserBase):
    password: str = Field(min_length=8)
    first_name: Optional[str] = None
    last_name: Optional[str] = None

class UserResponse(UserBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    role: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None

# Schema for JWT authentication token response
class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
