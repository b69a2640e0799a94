import os

from prometheus_client import Counter, Gauge, start_http_server


def init_metrics(logger):
    """Initialize Prometheus metrics if configured via env.

    Returns a dict with keys: enabled, polls, matched, most_recent
    """
    result = {
        'enabled': False,
        'polls': None,
        'matched': None,
        'most_recent': None,
    }
    port = os.getenv('METRICS_PORT')
    if not port:
        return result
    addr = os.getenv('METRICS_ADDR', '0.0.0.0')
    try:
        start_http_server(int(port), addr=addr)
        result['polls'] = Counter('ecr_watch_polls_total', 'Number of completed poll cycles')
        result['matched'] = Gauge('ecr_watch_matched_images', 'Images matching the tag pattern in the last poll')
        result['most_recent'] = Gauge(
            'ecr_watch_most_recent_pushed_timestamp_seconds',
            'Push time of the most recent matching image',
        )
        result['enabled'] = True
        logger.info(f"Prometheus metrics server on {addr}:{port}")
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to start metrics: {e}")
    return result
