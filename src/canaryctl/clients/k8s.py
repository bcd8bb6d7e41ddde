"""Kubernetes client using the official kubernetes Python client."""

from typing import Any

from canaryctl.config import K8sConfig
from canaryctl.core.exceptions import K8sError, AuthenticationError
from canaryctl.core.logging import get_logger

logger = get_logger(__name__)

ISTIO_GROUP = "networking.istio.io"
ISTIO_VERSION = "v1beta1"


class K8sClient:
    """Client for the Kubernetes operations canary traffic shifting needs."""

    def __init__(self, config: K8sConfig):
        self._config = config
        self._apps_v1: Any = None
        self._custom_objects: Any = None
        self._loaded = False

    def _load_config(self) -> None:
        """Load kubernetes configuration."""
        if self._loaded:
            return

        from kubernetes import config

        kubeconfig = self._config.get_kubeconfig()
        context = self._config.get_context()

        try:
            if kubeconfig:
                config.load_kube_config(config_file=kubeconfig, context=context)
            else:
                # Try in-cluster config first, then default kubeconfig
                try:
                    config.load_incluster_config()
                except config.ConfigException:
                    config.load_kube_config(context=context)

            self._loaded = True
            logger.debug("Loaded k8s config", context=context)
        except Exception as e:
            raise AuthenticationError(f"Failed to load k8s config: {e}")

    @property
    def apps_v1(self) -> Any:
        """Get AppsV1Api client (deployments)."""
        if self._apps_v1 is None:
            self._load_config()
            from kubernetes import client

            self._apps_v1 = client.AppsV1Api()
        return self._apps_v1

    @property
    def custom_objects(self) -> Any:
        """Get CustomObjectsApi client (Istio resources)."""
        if self._custom_objects is None:
            self._load_config()
            from kubernetes import client

            self._custom_objects = client.CustomObjectsApi()
        return self._custom_objects

    @property
    def namespace(self) -> str:
        """Get default namespace."""
        return self._config.get_namespace()

    # Deployment operations
    def scale_deployment(
        self,
        name: str,
        replicas: int,
        namespace: str | None = None,
    ) -> None:
        """Scale a deployment."""
        from kubernetes.client.rest import ApiException

        ns = namespace or self.namespace
        body = {"spec": {"replicas": replicas}}

        try:
            self.apps_v1.patch_namespaced_deployment_scale(name, ns, body)
            logger.debug("Scaled deployment", name=name, namespace=ns, replicas=replicas)
        except ApiException as e:
            raise K8sError(
                f"Failed to scale deployment: {e.reason}", status_code=e.status
            )

    def update_deployment_image(
        self,
        name: str,
        image: str,
        namespace: str | None = None,
        container: str | None = None,
    ) -> None:
        """Set the image of a deployment's container (first one by default)."""
        from kubernetes.client.rest import ApiException

        ns = namespace or self.namespace
        try:
            current = self.apps_v1.read_namespaced_deployment(name, ns)
            containers = current.spec.template.spec.containers or []
            if not containers:
                raise K8sError(f"Deployment {name} has no containers")
            target = container or containers[0].name

            body = {
                "spec": {
                    "template": {
                        "spec": {"containers": [{"name": target, "image": image}]}
                    }
                }
            }
            self.apps_v1.patch_namespaced_deployment(name, ns, body)
            logger.debug("Updated deployment image", name=name, image=image)
        except ApiException as e:
            raise K8sError(
                f"Failed to update deployment image: {e.reason}", status_code=e.status
            )

    # Istio operations
    def patch_virtual_service(
        self,
        name: str,
        http_routes: list[dict[str, Any]],
        namespace: str | None = None,
    ) -> None:
        """Replace the HTTP routes of an Istio VirtualService."""
        from kubernetes.client.rest import ApiException

        ns = namespace or self.namespace
        body = {"spec": {"http": http_routes}}
        try:
            self.custom_objects.patch_namespaced_custom_object(
                ISTIO_GROUP, ISTIO_VERSION, ns, "virtualservices", name, body
            )
        except ApiException as e:
            raise K8sError(
                f"Failed to patch virtual service: {e.reason}", status_code=e.status
            )
