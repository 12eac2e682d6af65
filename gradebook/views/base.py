import json
import logging
from functools import wraps

from django.core.cache import cache
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def ratelimit(key='user', rate='100/h', block=True):
    """
    Simple cache-based rate limiter decorator.

    Args:
        key: 'user' for user-based, 'ip' for IP-based limiting
        rate: Format "number/period" where period is s/m/h/d (second/minute/hour/day)
        block: If True, return 429 error; if False, just log warning

    Usage:
        @ratelimit(key='user', rate='100/h')
        def my_view(request):
            ...
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            try:
                limit, period = rate.split('/')
                limit = int(limit)
                period_seconds = {
                    's': 1, 'm': 60, 'h': 3600, 'd': 86400
                }.get(period, 3600)
            except (ValueError, AttributeError):
                limit, period_seconds = 100, 3600  # Default: 100/hour

            if key == 'user' and request.user.is_authenticated:
                cache_key = f"ratelimit:{view_func.__name__}:user:{request.user.pk}"
            else:
                cache_key = f"ratelimit:{view_func.__name__}:ip:{get_client_ip(request)}"

            # Atomically create the key if it doesn't exist
            if not cache.add(cache_key, 1, period_seconds):
                try:
                    current = cache.incr(cache_key)
                except ValueError:
                    # Key expired between add and incr, recreate
                    cache.set(cache_key, 1, period_seconds)
                    current = 1

                if current > limit:
                    logger.warning(f"Rate limit exceeded for {cache_key}")
                    if block:
                        return json_error('Too many requests. Please try again later.', status=429)

            return view_func(request, *args, **kwargs)
        return wrapper
    return decorator


def get_client_ip(request):
    """Get client IP address from request."""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def is_school_admin(user):
    """Check if user is a school admin or superuser."""
    return user.is_superuser or getattr(user, 'is_school_admin', False)


def is_teacher_or_admin(user):
    """Check if user is a teacher, school admin, or superuser."""
    return getattr(user, 'can_grade', False)


def json_success(data, status=200, **extra):
    return JsonResponse({'success': True, 'data': data, **extra}, status=status)


def json_error(message, status=400, errors=None, code=None, hint=''):
    body = {'success': False, 'message': message}
    if code:
        body['code'] = code
    if hint:
        body['hint'] = hint
    if errors is not None:
        body['errors'] = errors
    return JsonResponse(body, status=status)


def _role_required(check, denied_message):
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if not request.user.is_authenticated:
                return json_error('Authentication required', status=401, code='unauthenticated')
            if not check(request.user):
                logger.warning(
                    f"Denied {request.method} {request.path} for user {request.user.pk} "
                    f"({getattr(request.user, 'role_label', 'User')}) "
                    f"from {get_client_ip(request)}"
                )
                return json_error(denied_message, status=403, code='forbidden')
            return view_func(request, *args, **kwargs)
        return wrapper
    return decorator


def admin_required(view_func):
    """Require school admin or superuser; JSON 401/403 otherwise."""
    return _role_required(is_school_admin, 'Admin access required')(view_func)


def teacher_or_admin_required(view_func):
    """Require teacher, school admin, or superuser; JSON 401/403 otherwise."""
    return _role_required(is_teacher_or_admin, 'Teacher or admin access required')(view_func)


def parse_json_body(request):
    """Decode a JSON object request body. Raises ValueError if it is not one."""
    try:
        data = json.loads(request.body or b'{}')
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValueError('Request body must be valid JSON')
    if not isinstance(data, dict):
        raise ValueError('Request body must be a JSON object')
    return data


def parse_int(value, default=None, minimum=0):
    """Parse a query-string integer, falling back to `default`."""
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return max(number, minimum)
