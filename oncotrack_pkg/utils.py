# oncotrack_pkg/utils.py
import jwt
import datetime
import uuid # For generating JTI
from functools import wraps
from flask import request, jsonify, current_app, g
from .models import User
from .exceptions import AuthenticationError

CORRELATION_TOKEN_TYPE = 'connect'


# --- JWT Helper Functions ---
def create_access_token(user_id, user_permissions):
    """Creates a new JWT access token with a JTI claim."""
    now = datetime.datetime.now(datetime.timezone.utc)
    payload = {
        'exp': now + datetime.timedelta(minutes=current_app.config.get('JWT_EXPIRATION_MINUTES', 60)),
        'iat': now,
        'sub': str(user_id), # User ID (subject)
        'jti': str(uuid.uuid4()),
        'type': 'access',
        'permissions': user_permissions # List of permission strings
    }
    return jwt.encode(payload, current_app.config['JWT_SECRET_KEY'], algorithm=current_app.config.get('JWT_ALGORITHM', 'HS256'))


def decode_access_token(token):
    """
    Decodes a JWT access token.
    Returns the payload if successful, or an error string if decoding fails.
    """
    key_to_use = current_app.config['JWT_SECRET_KEY']
    algo = current_app.config.get('JWT_ALGORITHM', 'HS256')
    try:
        payload = jwt.decode(token, key_to_use, algorithms=[algo])
    except jwt.ExpiredSignatureError:
        current_app.logger.info("Token decode failed: ExpiredSignatureError")
        return "Token has expired. Please log in again."
    except jwt.InvalidSignatureError:
        current_app.logger.warning("Token decode failed: InvalidSignatureError (Wrong secret key or tampered token)")
        return "Invalid token signature. Please log in again."
    except jwt.DecodeError as e:
        current_app.logger.warning(f"Token decode failed: DecodeError - {e}")
        return "Invalid token format. Please log in again."
    except jwt.InvalidTokenError as e:
        current_app.logger.warning(f"Token decode failed: {e}")
        return "Invalid token. Please log in again."
    if payload.get('type') != 'access':
        return "Invalid token type."
    return payload


# --- Connection Correlation Tokens ---
def create_correlation_token(user_id, provider):
    """
    Short-lived token handed to the client when a partner connection is initiated.
    The client passes it back to the completion call instead of relying on
    browser session storage.
    """
    now = datetime.datetime.now(datetime.timezone.utc)
    ttl = current_app.config.get('CONNECT_CORRELATION_TTL_MINUTES', 15)
    payload = {
        'exp': now + datetime.timedelta(minutes=ttl),
        'iat': now,
        'sub': str(user_id),
        'jti': str(uuid.uuid4()),
        'type': CORRELATION_TOKEN_TYPE,
        'provider': provider
    }
    return jwt.encode(payload, current_app.config['JWT_SECRET_KEY'], algorithm=current_app.config.get('JWT_ALGORITHM', 'HS256'))


def verify_correlation_token(token, user_id, provider):
    """Returns None when the token is valid for this user/provider, else an error string."""
    try:
        payload = jwt.decode(token, current_app.config['JWT_SECRET_KEY'],
                             algorithms=[current_app.config.get('JWT_ALGORITHM', 'HS256')])
    except jwt.ExpiredSignatureError:
        return "Connection attempt has expired. Please start again."
    except jwt.InvalidTokenError as e:
        current_app.logger.warning(f"Correlation token rejected: {e}")
        return "Invalid connection attempt token."

    if payload.get('type') != CORRELATION_TOKEN_TYPE:
        return "Invalid connection attempt token."
    if payload.get('sub') != str(user_id) or payload.get('provider') != provider:
        return "Connection attempt token does not belong to this user."
    return None


# --- Request Parsing Helpers ---
def parse_iso_date(value):
    """Helper: Parse an ISO date ('YYYY-MM-DD' or full datetime), returns None on failure."""
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.date.fromisoformat(value[:10])
    except ValueError:
        return None


def get_json_body():
    """Returns the JSON body as a dict, or an empty dict for a missing/non-object body."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# --- Current User Utility & RBAC Decorators ---
def get_current_user_from_token():
    auth_header = request.headers.get('Authorization')
    token = None
    if auth_header and auth_header.startswith('Bearer '):
        token = auth_header.split(" ", 1)[1].strip()

    if not token:
        g.authentication_error = "Token is missing!"
        return None

    payload = decode_access_token(token)
    if isinstance(payload, str): # Error message returned
        g.authentication_error = payload
        return None

    user_id = payload.get('sub')
    if not user_id:
        g.authentication_error = "Invalid token payload (subject missing)!"
        return None

    user = db_get_user(user_id)
    if not user:
        g.authentication_error = "User from token not found in database."
        return None
    if not user.is_active:
        g.authentication_error = "User account is inactive."
        return None

    g.token_permissions = payload.get('permissions', [])
    return user


def db_get_user(user_id):
    from . import db
    return db.session.get(User, user_id)


def _authenticate():
    current_user = get_current_user_from_token()
    if not current_user:
        raise AuthenticationError(getattr(g, 'authentication_error', "Authentication required."))
    g.current_user = current_user


def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        _authenticate()
        return f(*args, **kwargs)
    return decorated_function


def permission_required(required_permission):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            _authenticate()

            user_permissions = getattr(g, 'token_permissions', [])
            if required_permission not in user_permissions:
                return jsonify({"success": False, "error": f"Permission '{required_permission}' required."}), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator
