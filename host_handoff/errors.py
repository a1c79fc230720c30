class HandoffError(Exception):
    """The configuration stage cannot trust its target host."""


class HandoffMissingError(HandoffError):
    pass


class StaleHandoffError(HandoffError):
    pass


class HostRecordFormatError(HandoffError):
    pass
