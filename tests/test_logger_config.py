import logging
import os
import tempfile
import unittest

from gitlab_api.logger_config import setup_logger


class TestSetupLogger(unittest.TestCase):

    def setUp(self):
        self.name = "gitlab_api_test_logger"

    def tearDown(self):
        logger = logging.getLogger(self.name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    def test_level_and_console_handler(self):
        logger = setup_logger(self.name, level="debug")
        self.assertEqual(logger.level, logging.DEBUG)
        self.assertEqual(len(logger.handlers), 1)

    def test_repeated_setup_does_not_stack_handlers(self):
        setup_logger(self.name)
        logger = setup_logger(self.name)
        self.assertEqual(len(logger.handlers), 1)

    def test_repeated_setup_keeps_foreign_handlers(self):
        logger = logging.getLogger(self.name)
        foreign = logging.NullHandler()
        logger.addHandler(foreign)

        setup_logger(self.name)
        setup_logger(self.name)

        self.assertIn(foreign, logger.handlers)
        self.assertEqual(len(logger.handlers), 2)

    def test_log_file_created(self):
        with tempfile.TemporaryDirectory() as tmp:
            log_file = os.path.join(tmp, "logs", "client.log")
            logger = setup_logger(self.name, log_file=log_file)
            logger.info("hello")
            for handler in logger.handlers:
                handler.flush()
            self.tearDown()

            with open(log_file, encoding="utf-8") as f:
                content = f.read()
            self.assertIn("[INFO] hello", content)
            self.assertIn(f"[{self.name}]", content)


if __name__ == '__main__':
    unittest.main()
