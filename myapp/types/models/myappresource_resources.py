class MyAppResourceResources:
    """Encapsulates the naming scheme used for the resources which the operator manages
    for a MyAppResource."""

    CACHE_SUFFIX = "cache"

    @classmethod
    def component_name(self, name: str):
        """Returns the name of the podinfo deployment for a MyAppResource of the given name."""
        return name

    @classmethod
    def cache_name(self, name: str):
        """Returns the name shared by the cache deployment and its service."""
        return f"{name}-{self.CACHE_SUFFIX}"

    @classmethod
    def qualified_cache_service_name(
        self, name: str, namespace: str, cluster_domain: str
    ):
        """Returns the fully qualified DNS name of the cache service."""
        return f"{self.cache_name(name)}.{namespace}.{cluster_domain}"

    @classmethod
    def cache_url(self, name: str, namespace: str, port: int, cluster_domain: str):
        """Returns the endpoint podinfo uses to reach the cache."""
        return f"tcp://{self.qualified_cache_service_name(name, namespace, cluster_domain)}:{port}"
