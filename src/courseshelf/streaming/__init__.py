from courseshelf.streaming.mime import VIDEO_EXTENSIONS, get_video_mime_type, is_video_path
from courseshelf.streaming.ranges import full_window, parse_range_header
from courseshelf.streaming.results import ErrorKind, LocalStream, RemoteRedirect, StreamError
from courseshelf.streaming.streamer import MediaStreamer

__all__ = [
    'VIDEO_EXTENSIONS',
    'get_video_mime_type',
    'is_video_path',
    'full_window',
    'parse_range_header',
    'ErrorKind',
    'LocalStream',
    'RemoteRedirect',
    'StreamError',
    'MediaStreamer',
]
