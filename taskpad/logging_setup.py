import logging
import sys

_NOISY = ('httpx', 'httpcore', 'urllib3', 'hpack')


def configure_logging(level='INFO'):
    """Configure root logging once: one stderr handler, timestamped lines.

    Called from the app factory; repeated calls replace the handler instead of
    stacking duplicates.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        if getattr(h, '_taskpad', False):
            root.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(
        fmt='%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    ))
    handler._taskpad = True
    root.addHandler(handler)

    # Third-party HTTP clients only matter when something goes wrong
    for name in _NOISY:
        logging.getLogger(name).setLevel(logging.WARNING)
