"""
Pydantic models for the AdmissionReview envelope.

The request wraps an arbitrary Kubernetes object. It is kept as a raw
payload and decoded into a concrete Pod in an explicit step, so that a
malformed object is reported as a decode error rather than failing the
envelope itself.
"""

import base64
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from vault_webhook.constants import (
    ADMISSION_API_VERSION,
    ADMISSION_KIND,
    PATCH_TYPE_JSON_PATCH,
)
from vault_webhook.errors import DecodeError

from .pod import Pod
from .types import KubernetesObject


class AdmissionRequest(BaseModel):
    """The request half of an AdmissionReview."""

    model_config = {"populate_by_name": True, "extra": "ignore"}

    uid: str = Field(..., description="Identifier echoed in the response")
    kind: dict[str, str] = Field(default_factory=dict)
    namespace: str = Field("", description="Namespace of the object")
    name: str = Field("", description="Name of the object, if known")
    operation: str = Field("", description="CREATE, UPDATE, DELETE or CONNECT")
    user_info: dict[str, Any] = Field(default_factory=dict, alias="userInfo")
    object_: KubernetesObject | None = Field(None, alias="object")
    dry_run: bool = Field(False, alias="dryRun")

    def decode_pod(self) -> Pod:
        """
        Decode the embedded object into a Pod.

        Returns:
            The decoded Pod

        Raises:
            DecodeError: If there is no object or it is not a valid Pod
        """
        if self.object_ is None:
            raise DecodeError("admission request carries no object")
        try:
            return Pod.model_validate(self.object_)
        except ValidationError as e:
            raise DecodeError(f"could not decode pod: {e}", cause=e) from e


class AdmissionReview(BaseModel):
    """An AdmissionReview as posted by the API server."""

    model_config = {"populate_by_name": True, "extra": "ignore"}

    api_version: str = Field(ADMISSION_API_VERSION, alias="apiVersion")
    kind: str = Field(ADMISSION_KIND)
    request: AdmissionRequest | None = Field(None)

    @classmethod
    def decode(cls, body: bytes) -> "AdmissionReview":
        """
        Decode a request body.

        Raises:
            DecodeError: If the body is not a valid AdmissionReview
        """
        try:
            review = cls.model_validate_json(body)
        except ValidationError as e:
            raise DecodeError(f"could not decode admission review: {e}", cause=e) from e
        if review.request is None:
            raise DecodeError("admission review carries no request")
        return review


class AdmissionResponse(BaseModel):
    """The response half of an AdmissionReview."""

    model_config = {"populate_by_name": True}

    uid: str = Field("")
    allowed: bool = Field(False)
    patch: str | None = Field(None, description="Base64 encoded JSON Patch")
    patch_type: str | None = Field(None, alias="patchType")
    status: dict[str, Any] | None = Field(None)

    @classmethod
    def allow(cls, uid: str = "") -> "AdmissionResponse":
        return cls(uid=uid, allowed=True)

    @classmethod
    def with_patch(cls, patch: bytes, uid: str = "") -> "AdmissionResponse":
        return cls(
            uid=uid,
            allowed=True,
            patch=base64.b64encode(patch).decode("ascii"),
            patch_type=PATCH_TYPE_JSON_PATCH,
        )

    @classmethod
    def failure(cls, message: str, uid: str = "") -> "AdmissionResponse":
        return cls(uid=uid, allowed=False, status={"message": message})

    def to_review(
        self, api_version: str = ADMISSION_API_VERSION, kind: str = ADMISSION_KIND
    ) -> dict[str, Any]:
        """Wrap the response in an AdmissionReview body."""
        return {
            "apiVersion": api_version,
            "kind": kind,
            "response": self.model_dump(by_alias=True, exclude_none=True),
        }
