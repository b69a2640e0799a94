import json
import logging
import os
import sys
from datetime import datetime, timezone


class JSONFormatter(logging.Formatter):
    def format(self, record):
        payload = {
            'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'msg': record.getMessage(),
            'logger': record.name,
        }
        if record.exc_info:
            payload['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(name: str = 'ecr_watch') -> logging.Logger:
    """Configure logging on stderr; stdout is reserved for the result."""
    log_level = os.getenv('LOG_LEVEL', 'INFO').upper()

    handlers = [logging.StreamHandler(sys.stderr)]
    log_dir = os.getenv('LOG_DIR')
    if log_dir:
        try:
            os.makedirs(log_dir, exist_ok=True)
            handlers.append(logging.FileHandler(os.path.join(log_dir, 'ecr_watch.log')))
        except OSError as e:
            print(f"Cannot write logs to {log_dir}: {e}", file=sys.stderr)

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        handlers=handlers,
        force=True,
    )
    fmt = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')
    if os.getenv('LOG_FORMAT', 'plain').lower() == 'json':
        fmt = JSONFormatter()
    for h in logging.getLogger().handlers:
        h.setFormatter(fmt)
    # botocore is chatty at DEBUG and would drown the poll log
    logging.getLogger('botocore').setLevel(max(logging.INFO, logging.getLogger().level))
    return logging.getLogger(name)
