"""AWS Lambda handler exposing the timetable as a REST API."""
import json
import logging
import os
import re
import time
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from processor.models import GroupScheduleRequest, TeacherScheduleRequest
from processor.schedule_parser import NoScheduleDataError, ScheduleParseError
from scraper.form_submitter import StaleTokenError
from service.mkr_service import MkrService

logger = logging.getLogger(__name__)

# One service per container: the backend session and caches outlive invocations
_service: Optional[MkrService] = None


class ValidationError(ValueError):
    """Request parameter failed validation."""


class NotFoundError(LookupError):
    """Path refers to a resource that does not exist."""


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def get_service() -> MkrService:
    """
    Build the service from environment variables on first use.

    Raises:
        RuntimeError: If SERVICE_URL is not set
    """
    global _service

    if _service is None:
        service_url = os.environ.get('SERVICE_URL')
        if not service_url:
            raise RuntimeError('Set SERVICE_URL pointing to a MKR instance')

        max_attempts = os.environ.get('MAX_FORM_ATTEMPTS')
        _service = MkrService(
            service_url,
            timeout=int(os.environ.get('TIMEOUT_SECONDS', '30')),
            cache_ttl=float(os.environ.get('CACHE_TTL_SECONDS', '3600')),
            max_form_attempts=int(max_attempts) if max_attempts else None
        )

    return _service


def reset_service() -> None:
    """Drop the cached service instance."""
    global _service
    _service = None


def _int_param(params: Dict[str, str], name: str) -> int:
    value = params[name]
    if not re.fullmatch(r'-?\d+', value):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    return int(value)


def _date_param(query: Dict[str, str], name: str) -> Optional[date]:
    value = query.get(name)
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value.replace('Z', '+00:00')).date()
    except ValueError:
        raise ValidationError(f"{name} must be an ISO 8601 date, got {value!r}") from None


def _check_structure(service: MkrService, structure_id: int) -> None:
    known = {item.id for item in service.load_structures()}
    if str(structure_id) not in known:
        raise NotFoundError(f"Structure {structure_id} not found")


def _as_json(items: List[Any]) -> List[dict]:
    return [item.to_dict() for item in items]


def structures(service, params, query):
    return _as_json(service.load_structures())


def chairs(service, params, query):
    structure_id = _int_param(params, 'structureId')
    _check_structure(service, structure_id)
    return _as_json(service.load_chairs(structure_id))


def faculties(service, params, query):
    structure_id = _int_param(params, 'structureId')
    _check_structure(service, structure_id)
    return _as_json(service.load_faculties(structure_id))


def courses(service, params, query):
    structure_id = _int_param(params, 'structureId')
    faculty_id = _int_param(params, 'facultyId')
    _check_structure(service, structure_id)
    return _as_json(service.load_courses(structure_id, faculty_id))


def faculty_groups(service, params, query):
    structure_id = _int_param(params, 'structureId')
    faculty_id = _int_param(params, 'facultyId')
    _check_structure(service, structure_id)
    return _as_json(service.load_faculty_groups(structure_id, faculty_id))


def groups(service, params, query):
    structure_id = _int_param(params, 'structureId')
    faculty_id = _int_param(params, 'facultyId')
    course = _int_param(params, 'course')
    _check_structure(service, structure_id)
    return _as_json(service.load_groups(structure_id, faculty_id, course))


def group_schedule(service, params, query):
    request = GroupScheduleRequest(
        structure_id=_int_param(params, 'structureId'),
        faculty_id=_int_param(params, 'facultyId'),
        course=_int_param(params, 'course'),
        group_id=_int_param(params, 'groupId'),
        start_date=_date_param(query, 'startDate'),
        end_date=_date_param(query, 'endDate')
    )
    _check_structure(service, request.structure_id)
    return _as_json(service.load_group_schedule(request))


def teachers(service, params, query):
    structure_id = _int_param(params, 'structureId')
    chair_id = _int_param(params, 'chairId')
    _check_structure(service, structure_id)
    return _as_json(service.load_teachers(structure_id, chair_id))


def teacher_schedule(service, params, query):
    request = TeacherScheduleRequest(
        structure_id=_int_param(params, 'structureId'),
        chair_id=_int_param(params, 'chairId'),
        teacher_id=_int_param(params, 'teacherId'),
        start_date=_date_param(query, 'startDate'),
        end_date=_date_param(query, 'endDate')
    )
    _check_structure(service, request.structure_id)
    return _as_json(service.load_teacher_schedule(request))


def _route(pattern: str) -> re.Pattern:
    return re.compile('^' + re.sub(r'\{(\w+)\}', r'(?P<\1>[^/]+)', pattern) + '/?$')


ROUTES: List[Tuple[re.Pattern, Callable]] = [
    (_route('/structures'), structures),
    (_route('/structures/{structureId}/chairs'), chairs),
    (_route('/structures/{structureId}/faculties'), faculties),
    (_route('/structures/{structureId}/faculties/{facultyId}/courses'), courses),
    (_route('/structures/{structureId}/faculties/{facultyId}/groups'), faculty_groups),
    (_route('/structures/{structureId}/faculties/{facultyId}/courses/{course}/groups'), groups),
    (_route('/structures/{structureId}/faculties/{facultyId}/courses/{course}/groups/{groupId}/schedule'),
     group_schedule),
    (_route('/structures/{structureId}/chairs/{chairId}/teachers'), teachers),
    (_route('/structures/{structureId}/chairs/{chairId}/teachers/{teacherId}/schedule'),
     teacher_schedule),
]


def _response(status_code: int, body: Any) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'headers': {'Content-Type': 'application/json'},
        'body': json.dumps(body, ensure_ascii=False)
    }


def _error(status_code: int, message: str, e: Exception) -> Dict[str, Any]:
    return _response(status_code, {
        'message': message,
        'error': str(e),
        'error_type': type(e).__name__
    })


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler for API Gateway proxy requests.

    Args:
        event: API Gateway proxy event (REST or HTTP API payload)
        context: Lambda context object

    Returns:
        Proxy response dict with statusCode, headers and JSON body
    """
    setup_logging(os.environ.get('LOG_LEVEL', 'INFO'))

    path = event.get('rawPath') or event.get('path') or '/'
    method = event.get('httpMethod') or (
        event.get('requestContext', {}).get('http', {}).get('method', 'GET')
    )
    query = event.get('queryStringParameters') or {}

    start_time = time.time()
    logger.info(f"Request {method} {path}", extra={'query': query})

    for pattern, handler in ROUTES:
        match = pattern.match(path)
        if match:
            break
    else:
        return _response(404, {'message': f"No route for {path}"})

    if method.upper() != 'GET':
        return _response(405, {'message': f"Method {method} not allowed"})

    try:
        body = handler(get_service(), match.groupdict(), query)

    except ValidationError as e:
        logger.warning(f"Invalid request for {path}: {e}")
        return _error(400, 'Invalid request parameters', e)

    except NotFoundError as e:
        logger.warning(str(e))
        return _error(404, 'Resource not found', e)

    except NoScheduleDataError as e:
        logger.warning(f"No schedule data for {path}: {e}")
        return _error(422, 'No schedule data for the requested range', e)

    except (ScheduleParseError, StaleTokenError, requests.RequestException) as e:
        logger.error(
            f"Timetable backend failure: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _error(502, 'Timetable backend failure', e)

    except Exception as e:
        logger.error(
            f"Request failed: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _error(500, 'Request failed', e)

    duration = time.time() - start_time
    logger.info(
        f"Request {method} {path} completed",
        extra={'duration_seconds': round(duration, 2)}
    )
    return _response(200, body)
