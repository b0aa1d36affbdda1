import argparse
import logging

import colorama


class ColoredLevelFormatter(logging.Formatter):
    LEVEL_COLORS = {
        logging.DEBUG: colorama.Fore.CYAN,
        logging.INFO: "",
        logging.WARNING: colorama.Fore.YELLOW,
        logging.ERROR: colorama.Fore.RED,
        logging.CRITICAL: colorama.Fore.RED + colorama.Style.BRIGHT,
    }

    def __init__(self, fmt: str, use_color: bool = True):
        super().__init__(fmt)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = self.LEVEL_COLORS.get(record.levelno, "")
        if not self.use_color or not color:
            return message
        return f"{color}{message}{colorama.Style.RESET_ALL}"


def argparse_add_logging_args(parser: argparse.ArgumentParser):
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--debug",
        dest="loglevel",
        action="store_const",
        const=logging.DEBUG,
        help="Print debug messages",
    )
    group.add_argument(
        "--quiet",
        "-q",
        dest="loglevel",
        action="store_const",
        const=logging.ERROR,
        help="Only print errors",
    )
    parser.set_defaults(loglevel=logging.WARNING)


def argparse_parse_logging(args: argparse.Namespace):
    use_color = not getattr(args, "no_color", False)
    handler = logging.StreamHandler()
    handler.setFormatter(
        ColoredLevelFormatter("[%(levelname)s] %(name)s: %(message)s", use_color)
    )
    logging.basicConfig(level=args.loglevel, handlers=[handler], force=True)
