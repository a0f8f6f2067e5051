"""Render the canonical two-stage Dockerfile for the application."""

import json

from ..config import AppConfig, BuildConfig

BUILDER_STAGE = "builder"
BUILD_DIR = "/app"

TEMPLATE = """\
#------------- stage 1: build -------------
FROM {builder_image} AS {builder_stage}

WORKDIR {build_dir}

COPY . {build_dir}

RUN mvn clean install{maven_flags}

#------------- stage 2: runtime -------------
FROM {runtime_image}

WORKDIR {build_dir}

COPY --from={builder_stage} {build_dir}/target/*.jar {artifact_path}

EXPOSE {port}

ENTRYPOINT {entrypoint}
"""


def render_dockerfile(build: BuildConfig, app: AppConfig) -> str:
    """Render a Dockerfile that builds with Maven and runs on a JRE image.

    Args:
        build: Image build settings
        app: Application settings (for the exposed port)

    Returns:
        Dockerfile text
    """
    artifact_path = f"{BUILD_DIR}/{build.artifact_name}"
    return TEMPLATE.format(
        builder_image=build.builder_image,
        builder_stage=BUILDER_STAGE,
        build_dir=BUILD_DIR,
        maven_flags=" -DskipTests=true" if build.skip_tests else "",
        runtime_image=build.runtime_image,
        artifact_path=artifact_path,
        port=app.port,
        entrypoint=json.dumps(["java", "-jar", artifact_path]),
    )
