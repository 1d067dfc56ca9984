class JarvisError(Exception):
    pass


class DeviceError(JarvisError):
    pass


class PermissionDenied(DeviceError):
    pass


class DeviceUnavailable(DeviceError):
    pass


class AlreadyEnded(DeviceError):
    pass


class UpstreamUnreachable(JarvisError):
    pass


class UpstreamTimeout(UpstreamUnreachable):
    pass


class TranscriptionError(JarvisError):
    pass


class UnsupportedFormat(TranscriptionError):
    pass


class EmptyAudio(TranscriptionError):
    pass


class EmptyResult(JarvisError):
    pass


class EmptyUpstreamResponse(EmptyResult):
    pass


class PlaybackError(JarvisError):
    pass


class TTSError(JarvisError):
    pass


class SessionError(JarvisError):
    pass


class ConfigurationError(JarvisError):
    pass
