class PeauxConfigException(Exception):
    pass


class DecoderConfigNotFoundException(PeauxConfigException):
    pass


class InvalidDecoderConfigError(PeauxConfigException):
    pass
