import logging

from sizefit.logger_setup import ColoredFormatter, DEFAULT_LOGGING_CONFIG, LOGGER_NAME, get_logger, setup_logging


def test_colored_formatter_leaves_record_untouched():
    formatter = ColoredFormatter(fmt='%(levelname)s %(message)s')
    record = logging.makeLogRecord({'levelname': 'ERROR', 'levelno': logging.ERROR, 'msg': 'encode failed'})

    rendered = formatter.format(record)

    assert 'encode failed' in rendered
    assert rendered != 'ERROR encode failed'
    assert record.levelname == 'ERROR'


def test_setup_logging_redirects_file_handlers(tmp_path):
    logs_dir = tmp_path / 'logs'
    logger = setup_logging(log_level='error', logs_dir=str(logs_dir), logging_config=DEFAULT_LOGGING_CONFIG)
    try:
        assert logger.name == LOGGER_NAME
        file_handlers = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
        assert file_handlers
        assert file_handlers[0].baseFilename.startswith(str(logs_dir))
        console = [h for h in logger.handlers if type(h) is logging.StreamHandler][0]
        assert console.level == logging.ERROR
        assert isinstance(console.formatter, ColoredFormatter)
        # The shared default is not modified in place
        assert DEFAULT_LOGGING_CONFIG['handlers']['file']['filename'] == 'logs/sizefit.log'
    finally:
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)
        logger.propagate = True
        root = logging.getLogger()
        for handler in list(root.handlers):
            if type(handler) is logging.StreamHandler:
                root.removeHandler(handler)


def test_get_logger_namespaces_under_package():
    assert get_logger('server').name == 'sizefit.server'
    assert get_logger().name == 'sizefit'
