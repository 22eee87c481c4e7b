"""Dagger pipeline for the CodeBuild sample FastAPI service.

Builds the test container, runs the unit suite (one version or a matrix),
and runs the e2e suite against the API started as a Dagger service.
"""

import asyncio

import dagger as dg
from dagger import dag, function, object_type

API_PORT = 3000


@object_type
class CodebuildPipeline:
    """CI pipeline for the CodeBuild sample application using uv.

    Stages:
    - Unit tests in isolated containers
    - Unit tests across multiple Python versions
    - The API started as a service
    - E2e tests bound to that service
    """

    # Base container creation
    @function
    def test_container(
        self, source: dg.Directory, python_version: str = "3.12"
    ) -> dg.Container:
        """Create a base container with uv and source code.

        Args:
            source: Directory containing the source code
            python_version: Python version to use (default: 3.12)

        Returns:
            Container configured with uv, source code and APP_ENV=test
        """
        uv_cache = dag.cache_volume("uv")

        return (
            dag.container()
            .from_(f"ghcr.io/astral-sh/uv:python{python_version}-bookworm-slim")
            .with_mounted_cache("/root/.cache/uv", uv_cache)
            .with_directory("/app", source)
            .with_workdir("/app")
            .with_env_variable("UV_SYSTEM_PYTHON", "1")
            .with_env_variable("APP_ENV", "test")
        )

    # Unit testing functions
    @function
    async def unit_test(
        self, source: dg.Directory, python_version: str = "3.12"
    ) -> str:
        """Run unit tests with pytest.

        Args:
            source: Directory containing the source code
            python_version: Python version to use

        Returns:
            Test output from pytest
        """
        return await self.run_test(source, "tests/unit", python_version)

    @function
    async def unit_test_matrix(
        self, source: dg.Directory, versions: str = "3.10,3.11,3.12"
    ) -> str:
        """Run unit tests concurrently on multiple Python versions.

        Args:
            source: Directory containing the source code
            versions: Comma-separated list of Python versions

        Returns:
            Formatted test results for all versions
        """
        version_list = [v.strip() for v in versions.split(",") if v.strip()]

        async def test_version(version: str) -> tuple[str, str]:
            try:
                result = await self.unit_test(source, version)
                return version, f"Python {version}: PASSED\n{result}"
            except dg.ExecError as e:
                return version, f"Python {version}: FAILED\n{e.stdout}{e.stderr}"

        results = await asyncio.gather(*[test_version(v) for v in version_list])

        output_lines = ["=== MULTI-VERSION TEST RESULTS ===", ""]
        for _, result in results:
            output_lines.extend([result, "=" * 50, ""])

        return "\n".join(output_lines)

    @function
    async def run_test(
        self, source: dg.Directory, path: str, python_version: str = "3.12"
    ) -> str:
        """Run tests at a specific path.

        Args:
            source: Directory containing the source code
            path: Path to test files or directory
            python_version: Python version to use

        Returns:
            Test output from pytest
        """
        return await (
            self.test_container(source, python_version)
            .with_exec(["uv", "pip", "install", "-e", ".[test]"])
            .with_exec(["pytest", path, "-v", "--tb=short"])
            .stdout()
        )

    # Service-related functions
    @function
    def api_service(
        self, source: dg.Directory, python_version: str = "3.12"
    ) -> dg.Service:
        """Start the sample API as a Dagger service on port 3000.

        APP_ENV is overridden to "production" so the entry point binds
        the port instead of skipping startup.

        Args:
            source: Directory containing the application code
            python_version: Python version to use (default: 3.12)

        Returns:
            A Dagger service running the FastAPI application
        """
        return (
            self.test_container(source, python_version)
            .with_exec(["uv", "pip", "install", "-e", "."])
            .with_env_variable("APP_ENV", "production")
            .with_env_variable("PORT", str(API_PORT))
            .with_exposed_port(API_PORT)
            .as_service(args=["python", "-m", "codebuild_sample"])
        )

    @function
    async def test_api_service(
        self, source: dg.Directory, python_version: str = "3.12"
    ) -> str:
        """Smoke test the API service with curl.

        Binds the service to an alpine container under the alias 'api'
        and pretty prints the JSON returned by each GET endpoint.

        Args:
            source: Directory containing the source code
            python_version: Python version to use

        Returns:
            Test results showing API responses
        """
        api_svc = self.api_service(source, python_version)

        test_client = (
            dag.container()
            .from_("alpine:latest")
            .with_exec(["apk", "add", "--no-cache", "curl", "jq"])
            .with_service_binding("api", api_svc)
        )

        result_lines = ["=== API SERVICE TEST RESULTS ===", ""]
        for label, path in (
            ("Root Endpoint (GET /)", "/"),
            ("Health Endpoint (GET /health)", "/health"),
            ("Hello Endpoint (GET /api/hello)", "/api/hello"),
        ):
            # A failed request fails the exec; no pipe to mask curl's status
            pretty = await (
                test_client.with_exec(
                    [
                        "curl", "-sf", "-o", "/tmp/response.json",
                        f"http://api:{API_PORT}{path}",
                    ]
                )
                .with_exec(["jq", "-e", ".", "/tmp/response.json"])
                .stdout()
            )
            result_lines.extend([f"{label}:", pretty, ""])

        result_lines.append("All endpoints responded successfully!")

        return "\n".join(result_lines)

    @function
    async def integration_test(
        self, source: dg.Directory, python_version: str = "3.12"
    ) -> str:
        """Run the e2e suite against a live API service.

        Args:
            source: Directory containing the source code
            python_version: Python version to use

        Returns:
            Integration test results from pytest
        """
        api_svc = self.api_service(source, python_version)

        return await (
            self.test_container(source, python_version)
            .with_service_binding("api", api_svc)
            .with_env_variable("API_BASE_URL", f"http://api:{API_PORT}")
            .with_exec(["uv", "pip", "install", "-e", ".[test]"])
            .with_exec(["pytest", "tests/e2e", "-v", "--tb=short"])
            .stdout()
        )
