# Models package - database models
from inex_auth.models.user import User
from inex_auth.models.token import IssuedToken, TokenKind
