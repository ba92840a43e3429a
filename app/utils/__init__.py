"""
Utils package
"""
from .file_utils import (
    decode_base64_image,
    validate_image_bytes,
    validate_reference_image
)
from .data_utils import (
    get_request_data,
    parse_bool,
    parse_number,
    parse_date,
    parse_timestamp,
    serialize_class,
    serialize_student,
    serialize_attendance
)
from .context_utils import (
    get_db,
    get_ledger,
    get_monitor,
    get_scheduler,
    error_response,
    server_error
)

__all__ = [
    'decode_base64_image',
    'validate_image_bytes',
    'validate_reference_image',
    'get_request_data',
    'parse_bool',
    'parse_number',
    'parse_date',
    'parse_timestamp',
    'serialize_class',
    'serialize_student',
    'serialize_attendance',
    'get_db',
    'get_ledger',
    'get_monitor',
    'get_scheduler',
    'error_response',
    'server_error'
]
