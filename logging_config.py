"""
Logging configuration for U-Park.

Sets up console logging once for the whole process. Modules obtain their
logger with ``logging.getLogger(__name__)``.
"""
import logging
import logging.config

SIMPLE_FORMAT = '%(levelname)s - %(name)s - %(message)s'
DETAILED_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'

# Chatty third-party loggers kept at WARNING
MODULE_LOG_LEVELS = {
    'sqlalchemy.engine': 'WARNING',
    'werkzeug': 'WARNING',
    'PIL': 'WARNING',
}

_configured = False


def setup_logging(level='INFO', fmt='detailed'):
    """Configure root logging. Repeated calls are no-ops."""
    global _configured
    if _configured:
        return

    config = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'simple': {'format': SIMPLE_FORMAT},
            'detailed': {'format': DETAILED_FORMAT},
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'formatter': fmt,
                'level': level,
            },
        },
        'root': {'handlers': ['console'], 'level': level},
        'loggers': {
            name: {'level': lvl, 'propagate': True}
            for name, lvl in MODULE_LOG_LEVELS.items()
        },
    }
    logging.config.dictConfig(config)
    _configured = True
    logging.getLogger(__name__).debug('Logging configured at %s', level)
