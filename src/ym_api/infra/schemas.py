from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class InitResponse(BaseModel):
    """Token exchange result (also built locally for token-based init)."""
    model_config = ConfigDict(extra="allow")

    access_token: str
    uid: int
    expires_in: Optional[int] = None
    token_type: Optional[str] = None


class FileDownloadInfo(BaseModel):
    """`downloadInfo` object of the /get-file-info endpoint"""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    track_id: Optional[str] = Field(None, alias="trackId")
    quality: Optional[str] = None
    codec: Optional[str] = None
    bitrate: int = 0
    transport: Optional[str] = None
    size: Optional[int] = None
    gain: bool = False
    url: Optional[str] = None
    urls: list[str] = Field(default_factory=list)
    real_id: Optional[str] = Field(None, alias="realId")
    key: Optional[str] = None

    @property
    def first_url(self) -> Optional[str]:
        if self.url:
            return self.url
        return self.urls[0] if self.urls else None


class FileInfoResponse(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    download_info: FileDownloadInfo = Field(alias="downloadInfo")


class LegacyDownloadInfo(BaseModel):
    """One item of the legacy /tracks/{id}/download-info list"""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    codec: str
    gain: bool = False
    preview: bool = False
    download_info_url: str = Field(alias="downloadInfoUrl")
    direct: bool = False
    bitrate_in_kbps: int = Field(0, alias="bitrateInKbps")


class DirectLinkInfo(BaseModel):
    """`<download-info>` XML document fields used for the direct link"""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    host: str = Field(min_length=1)
    path: str = Field(min_length=2, pattern=r"^/")
    ts: str = Field(min_length=1)
    s: str = Field(min_length=1)
