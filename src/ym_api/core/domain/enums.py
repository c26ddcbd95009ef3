from __future__ import annotations

from enum import Enum


class DownloadTrackQuality(str, Enum):
    LOSSLESS = "lossless"
    HIGH = "high"
    LOW = "low"


class DownloadTrackCodec(str, Enum):
    FLAC = "flac"
    FLAC_MP4 = "flac-mp4"
    AAC = "aac"
    AAC_MP4 = "aac-mp4"
    HE_AAC = "he-aac"
    HE_AAC_MP4 = "he-aac-mp4"
    MP3 = "mp3"


class Transport(str, Enum):
    RAW = "raw"
    ENCRAW = "encraw"


class SearchType(str, Enum):
    ALL = "all"
    ARTIST = "artist"
    TRACK = "track"
    ALBUM = "album"


class ChartType(str, Enum):
    RUSSIA = "russia"
    WORLD = "world"


class BodyKind(Enum):
    """Discriminant of a parsed response body, decided from Content-Type."""

    JSON = "json"
    XML = "xml"
    TEXT = "text"


ALL_CODECS = "flac,aac,he-aac,mp3,flac-mp4,aac-mp4,he-aac-mp4"
