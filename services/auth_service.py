from utils.hashing import verify_password, get_password_hash
from models.users import User
from schemas.auth_schemas import RegisterRequest
from sqlalchemy.orm import Session
from fastapi import HTTPException
from starlette import status
from utils.logger import get_logger

logger = get_logger(__name__)


class AuthService:
    """User-record lookup and credential checks for the auth flows."""

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> User | None:
        return db.query(User).filter(User.email == email.lower().strip()).first()

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> User | None:
        return db.query(User).filter(User.id == int(user_id)).one_or_none()

    @staticmethod
    def create_user(request: RegisterRequest, db: Session) -> User:
        """
        Creates a new, unverified user.

        Raises:
            HTTPException 409: if the email is already registered
        """
        existing_user = AuthService.get_user_by_email(db, request.email)
        if existing_user:
            logger.warning(
                "Registration attempt with existing email",
                extra={"email": request.email}
            )
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="User with this email already exists"
            )

        model = User(
            email=request.email.lower().strip(),
            name=request.name,
            hashed_password=get_password_hash(request.password),
            is_verified=False
        )

        db.add(model)
        db.commit()
        db.refresh(model)
        return model

    @staticmethod
    def authenticate_user(email: str, password: str, db: Session) -> User:
        """
        Checks credentials. Every failure gets the same 401 so the response
        never reveals whether the email exists.
        """
        user = AuthService.get_user_by_email(db, email)

        if not user:
            logger.warning(
                "Login failed - user not found",
                extra={"email": email}
            )
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password")

        if not user.is_active:
            logger.warning(
                "Login failed - inactive account",
                extra={"user_id": user.id, "email": email}
            )
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password")

        if not verify_password(password, user.hashed_password):
            logger.warning(
                "Login failed - invalid password",
                extra={"user_id": user.id, "email": email}
            )
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password")

        logger.debug(
            "User authenticated successfully",
            extra={"user_id": user.id, "email": email}
        )
        return user

    @staticmethod
    def mark_verified(db: Session, user_id: int) -> User | None:
        user = AuthService.get_user_by_id(db, user_id)
        if not user:
            return None

        user.is_verified = True
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def update_password(db: Session, user_id: int, new_password: str) -> User | None:
        user = AuthService.get_user_by_id(db, user_id)
        if not user:
            return None

        user.hashed_password = get_password_hash(new_password)
        db.commit()
        db.refresh(user)
        return user
