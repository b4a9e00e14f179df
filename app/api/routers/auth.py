import logging
from fastapi import APIRouter, Depends, status

from app.api.deps import get_current_user, get_gateway
from app.core.exceptions import InvalidInputError
from app.models.user import Credentials, SessionUser, SignupRequest, User
from app.services.feed_service import FeedGateway
from app.views.formatter import signup_error

logger = logging.getLogger(__name__)
router = APIRouter()

@router.get("/me", response_model=SessionUser, summary="Get Current Session")
def read_users_me(gateway: FeedGateway = Depends(get_gateway)):
    """
    Returns the signed-in user of this session and their profile document.
    """
    user = gateway.current_user
    if user is None:
        return SessionUser(logged_in=False)
    return SessionUser(
        logged_in=True,
        user=User.from_auth_user(user),
        profile=gateway.get_user_profile(user.uid),
    )

@router.post("/register", response_model=User, status_code=status.HTTP_201_CREATED, summary="Create Account")
def register(request: SignupRequest, gateway: FeedGateway = Depends(get_gateway)):
    """
    Creates an account, writes its profile document and signs it in.
    """
    email = request.email.strip()
    error = signup_error(email, request.password, request.confirm_password)
    if error:
        raise InvalidInputError(error)
    return User.from_auth_user(gateway.register(email, request.password))

@router.post("/login", response_model=User, summary="Sign In")
def login(request: Credentials, gateway: FeedGateway = Depends(get_gateway)):
    """
    Signs this session in with an email and password.
    """
    return User.from_auth_user(gateway.authenticate(request.email.strip(), request.password))

@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT, summary="Sign Out")
def logout(
    current_user: User = Depends(get_current_user),
    gateway: FeedGateway = Depends(get_gateway),
):
    gateway.logout()
    logger.info("User %s signed out", current_user.id)
