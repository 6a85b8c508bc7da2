# Plugin discovery
PLUGIN_DEFAULT_DIR = "."  # Walked recursively for plugin executables
PLUGIN_DEFAULT_GLOB = "veinmind-*"  # File name pattern of plugin executables
PLUGIN_DIR_ENV = "SCANRUNNER_PLUGIN_DIR"  # Overrides PLUGIN_DEFAULT_DIR when set
PLUGIN_INFO_TIMEOUT = 30  # Seconds allowed for `<plugin> info`
PLUGIN_INFO_CONCURRENCY = 8  # Parallel `info` calls during discovery
PLUGIN_EXEC_TIMEOUT = 1800  # 30 minutes per plugin invocation
PLUGIN_RUNTIME_ENV = "SCANRUNNER_RUNTIME"  # Tells the plugin which runtime owns the image
PLUGIN_IMAGE_COMMAND_TYPE = "image"  # Command type applicable to image scans

# Scan defaults
DEFAULT_THREADS = 5  # Parallel plugin invocations per image
DEFAULT_OUTPUT = "report.json"
DEFAULT_EXIT_CODE = 0

# Registry defaults
DEFAULT_RUNTIME = "docker"
DEFAULT_SERVER = "index.docker.io"
SUPPORTED_RUNTIMES = ["docker", "containerd"]

# Docker Hub naming quirks
DOCKER_DEFAULT_DOMAIN = "docker.io"
DOCKER_LEGACY_DOMAINS = ["index.docker.io", "registry-1.docker.io"]
DOCKER_OFFICIAL_NAMESPACES = ["library", "_"]  # "Unqualified image" markers
DOCKER_DEFAULT_TAG = "latest"

# Containerd
CONTAINERD_NAMESPACE = "k8s.io"
CONTAINERD_NAMESPACE_ENV = "SCANRUNNER_CONTAINERD_NAMESPACE"
CTR_PATH = "ctr"

# Registry network policy
REGISTRY_TIMEOUT = 30.0  # HTTP timeout for catalog requests (seconds)
REGISTRY_PULL_TIMEOUT = 1800  # Pulls of large images can be slow
REGISTRY_CATALOG_PAGE_SIZE = 100
REGISTRY_MAX_RETRIES = 4  # Retries on 429/5xx
REGISTRY_RETRY_BASE_DELAY = 1.0  # Base delay in seconds for exponential backoff
REGISTRY_RETRY_MAX_DELAY = 60.0  # Upper bound, also for Retry-After hints

# Logging
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEFAULT_LOG_LEVEL = "INFO"
