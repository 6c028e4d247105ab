import logging
import unittest

from chessdb.utils.logger import get_logger, set_level


class LoggingUtilsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.logger = logging.getLogger("chessdb")
        self.original_handlers = list(self.logger.handlers)
        self.original_level = self.logger.level

    def tearDown(self) -> None:
        self.logger.handlers = list(self.original_handlers)
        self.logger.setLevel(self.original_level)

    def test_get_logger_reuses_existing_handlers(self) -> None:
        handler = logging.StreamHandler()
        self.logger.handlers = [handler]

        logger = get_logger("chessdb")

        self.assertIs(logger, self.logger)
        self.assertEqual(len(logger.handlers), 1)
        self.assertFalse(logger.propagate)

    def test_explicit_level_survives_get_logger(self) -> None:
        set_level(logging.ERROR, ["chessdb"])

        logger = get_logger("chessdb", level=logging.DEBUG)

        self.assertEqual(logger.level, logging.ERROR)

    def test_set_level_updates_known_loggers(self) -> None:
        set_level(logging.WARNING)

        self.assertEqual(logging.getLogger("chessdb").level, logging.WARNING)
        self.assertEqual(logging.getLogger("uvicorn").level, logging.WARNING)


if __name__ == "__main__":
    unittest.main()
