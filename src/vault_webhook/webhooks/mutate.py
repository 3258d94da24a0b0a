"""
Mutating admission webhook for Pods.

The API server posts an AdmissionReview for every Pod creation. The
handler decodes the pod, looks up the bindings granted to its service
account and answers with a JSON Patch injecting one credentials sidecar
and one init container per binding.

Once a request has a body of the right type the answer is always HTTP 200:
anything that goes wrong while handling it is reported inside the
AdmissionReview so the API server can apply the webhook's failure policy.
"""

import logging

from aiohttp import web
from opentelemetry.trace import Tracer

from vault_webhook.constants import (
    ADMISSION_API_VERSION,
    ADMISSION_KIND,
    JSON_CONTENT_TYPE,
)
from vault_webhook.errors import WebhookError
from vault_webhook.models.admission import AdmissionResponse, AdmissionReview
from vault_webhook.observability.logging import AdmissionLogger, set_correlation_id
from vault_webhook.observability.metrics import (
    RESULT_ERROR,
    RESULT_MUTATED,
    RESULT_SKIPPED,
    WebhookMetrics,
)
from vault_webhook.observability.tracing import admission_span, get_tracer
from vault_webhook.services.binding_matcher import BindingMatcher
from vault_webhook.services.patch_builder import PatchBuilder, encode_patch

logger = logging.getLogger(__name__)
admission_logger = AdmissionLogger(__name__)

MUTATE_PATH = "/mutate"
HEALTHZ_PATH = "/healthz"


class PodMutator:
    """Turns AdmissionReviews for pods into admission responses."""

    def __init__(
        self,
        matcher: BindingMatcher,
        builder: PatchBuilder,
        metrics: WebhookMetrics | None = None,
    ):
        self.matcher = matcher
        self.builder = builder
        self.metrics = metrics

    def mutate(self, review: AdmissionReview) -> AdmissionResponse:
        """
        Compute the response for a decoded review.

        Raises:
            DecodeError: If the embedded object is not a Pod
            EnumerationError: If the binding cache holds a malformed entry
            PatchEncodingError: If the patch cannot be serialized
        """
        request = review.request
        pod = request.decode_pod()
        namespace = request.namespace or pod.metadata.namespace or ""
        owner = pod.owner

        admission_logger.log_review(
            uid=request.uid,
            namespace=namespace,
            pod_name=pod.display_name,
            owner_kind=owner.kind if owner else request.kind.get("kind", ""),
            owner_name=owner.name if owner else "",
            operation=request.operation,
            user=request.user_info.get("username", ""),
        )

        service_account = pod.spec.service_account_name or ""
        credentials = self.matcher.match(namespace, service_account)
        if not credentials:
            admission_logger.log_skipped(
                namespace,
                pod.display_name,
                f"no bindings for service account {service_account!r}",
            )
            if self.metrics is not None:
                self.metrics.record_admission(RESULT_SKIPPED)
            return AdmissionResponse.allow(request.uid)

        patch = encode_patch(self.builder.create_patch(pod, namespace, credentials))
        admission_logger.log_patch(namespace, pod.display_name, patch.decode("utf-8"))
        if self.metrics is not None:
            self.metrics.record_admission(RESULT_MUTATED, sidecars=len(credentials))
        return AdmissionResponse.with_patch(patch, request.uid)

    def review(self, body: bytes) -> dict:
        """
        Answer a raw AdmissionReview body.

        Returns:
            The AdmissionReview to send back
        """
        api_version = ADMISSION_API_VERSION
        kind = ADMISSION_KIND
        uid = ""
        try:
            review = AdmissionReview.decode(body)
            api_version = review.api_version
            kind = review.kind
            uid = review.request.uid
            set_correlation_id(uid)
            response = self.mutate(review)
        except WebhookError as e:
            admission_logger.log_failure(e)
            if self.metrics is not None:
                self.metrics.record_admission(RESULT_ERROR)
            response = AdmissionResponse.failure(str(e), uid)
        except Exception as e:
            admission_logger.log_failure(e, exc_info=True)
            if self.metrics is not None:
                self.metrics.record_admission(RESULT_ERROR)
            response = AdmissionResponse.failure(
                f"unexpected error handling pod: {type(e).__name__}: {e}", uid
            )
        return response.to_review(api_version, kind)


def create_webhook_app(
    matcher: BindingMatcher,
    builder: PatchBuilder,
    metrics: WebhookMetrics | None = None,
    tracer: Tracer | None = None,
) -> web.Application:
    """
    Build the HTTPS application serving the admission endpoint.

    Args:
        matcher: Resolves the bindings that apply to a pod
        builder: Builds the injection patch
        metrics: Metrics to record admission outcomes into
        tracer: Tracer for admission spans (no-op if omitted)

    Returns:
        aiohttp application with ``/mutate`` and ``/healthz``
    """
    mutator = PodMutator(matcher, builder, metrics)
    tracer = tracer or get_tracer()

    async def handle_mutate(request: web.Request) -> web.Response:
        body = await request.read()
        if not body:
            return web.Response(status=400, text="empty body")
        content_type = request.headers.get("Content-Type", "")
        if content_type != JSON_CONTENT_TYPE:
            return web.Response(
                status=415,
                text=f"Content-Type={content_type}, expect {JSON_CONTENT_TYPE}",
            )

        attributes = {"http.route": MUTATE_PATH}
        with admission_span(tracer, "mutate_pod", request.headers, attributes):
            if metrics is not None:
                with metrics.time_admission():
                    review = mutator.review(body)
            else:
                review = mutator.review(body)
        return web.json_response(review)

    async def handle_healthz(request: web.Request) -> web.Response:
        return web.Response(text="ok")

    app = web.Application()
    app.router.add_post(MUTATE_PATH, handle_mutate)
    app.router.add_get(HEALTHZ_PATH, handle_healthz)
    return app
