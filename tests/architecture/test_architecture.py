"""Architecture import rule tests for the freight board service.

These tests enforce the project's architectural boundaries:
- Business logic (services/) is independent of HTTP framework and transport
- Routers never reach for configuration or the app factory directly
- Config and schemas remain leaf-like modules
"""

from __future__ import annotations

import pytest
from pytestarch import EvaluableArchitecture, LayeredArchitecture, LayerRule, Rule


# ---------------------------------------------------------------------------
# Module-level rules: services layer independence
# ---------------------------------------------------------------------------


@pytest.mark.architecture
class TestServicesLayerIndependence:
    """The services/ layer contains pure business logic with no framework imports."""

    @pytest.mark.parametrize(
        "forbidden",
        [
            "freight_board_service.routers",
            "freight_board_service.core",
            "freight_board_service.clients",
        ],
    )
    def test_services_must_not_import_outer_packages(
        self,
        evaluable: EvaluableArchitecture,
        forbidden: str,
    ) -> None:
        """Business logic must not depend on routing, app wiring, or HTTP clients."""
        (
            Rule()
            .modules_that()
            .are_sub_modules_of("freight_board_service.services")
            .should_not()
            .import_modules_that()
            .are_sub_modules_of(forbidden)
            .assert_applies(evaluable)
        )

    @pytest.mark.parametrize(
        "forbidden",
        [
            "freight_board_service.app",
            "freight_board_service.schemas",
            "freight_board_service.config",
        ],
    )
    def test_services_must_not_import_outer_modules(
        self,
        evaluable: EvaluableArchitecture,
        forbidden: str,
    ) -> None:
        """Business logic receives its settings as constructor arguments."""
        (
            Rule()
            .modules_that()
            .are_sub_modules_of("freight_board_service.services")
            .should_not()
            .import_modules_that()
            .are_named(forbidden)
            .assert_applies(evaluable)
        )


# ---------------------------------------------------------------------------
# Module-level rules: config and schemas are leaf modules
# ---------------------------------------------------------------------------


@pytest.mark.architecture
class TestLeafModules:
    """Config and schemas should not depend on service internals."""

    @pytest.mark.parametrize(
        "forbidden",
        [
            "freight_board_service.routers",
            "freight_board_service.services",
            "freight_board_service.core",
        ],
    )
    def test_config_is_a_leaf(
        self,
        evaluable: EvaluableArchitecture,
        forbidden: str,
    ) -> None:
        (
            Rule()
            .modules_that()
            .are_named("freight_board_service.config")
            .should_not()
            .import_modules_that()
            .are_sub_modules_of(forbidden)
            .assert_applies(evaluable)
        )

    @pytest.mark.parametrize(
        "forbidden",
        [
            "freight_board_service.routers",
            "freight_board_service.services",
            "freight_board_service.core",
        ],
    )
    def test_schemas_are_a_leaf(
        self,
        evaluable: EvaluableArchitecture,
        forbidden: str,
    ) -> None:
        (
            Rule()
            .modules_that()
            .are_named("freight_board_service.schemas")
            .should_not()
            .import_modules_that()
            .are_sub_modules_of(forbidden)
            .assert_applies(evaluable)
        )


# ---------------------------------------------------------------------------
# Module-level rules: routers are thin wrappers
# ---------------------------------------------------------------------------


@pytest.mark.architecture
class TestRouterConstraints:
    """Routers reach managers through AppState only."""

    def test_routers_must_not_import_config_directly(
        self,
        evaluable: EvaluableArchitecture,
    ) -> None:
        """Config flows to routers via AppState."""
        (
            Rule()
            .modules_that()
            .are_sub_modules_of("freight_board_service.routers")
            .should_not()
            .import_modules_that()
            .are_named("freight_board_service.config")
            .assert_applies(evaluable)
        )

    def test_routers_must_not_import_app(
        self,
        evaluable: EvaluableArchitecture,
    ) -> None:
        (
            Rule()
            .modules_that()
            .are_sub_modules_of("freight_board_service.routers")
            .should_not()
            .import_modules_that()
            .are_named("freight_board_service.app")
            .assert_applies(evaluable)
        )

    def test_routers_must_not_import_lifespan(
        self,
        evaluable: EvaluableArchitecture,
    ) -> None:
        (
            Rule()
            .modules_that()
            .are_sub_modules_of("freight_board_service.routers")
            .should_not()
            .import_modules_that()
            .are_named("freight_board_service.core.lifespan")
            .assert_applies(evaluable)
        )

    def test_routers_must_not_import_clients(
        self,
        evaluable: EvaluableArchitecture,
    ) -> None:
        """The identity client is only reached through AppState."""
        (
            Rule()
            .modules_that()
            .are_sub_modules_of("freight_board_service.routers")
            .should_not()
            .import_modules_that()
            .are_sub_modules_of("freight_board_service.clients")
            .assert_applies(evaluable)
        )


# ---------------------------------------------------------------------------
# Layer-level rules
# ---------------------------------------------------------------------------


@pytest.mark.architecture
class TestLayeredArchitecture:
    """Layer-level dependency rules enforcing the service architecture."""

    @pytest.mark.parametrize("upper_layer", ["routers", "core", "clients"])
    def test_services_layer_must_not_access_upper_layers(
        self,
        evaluable: EvaluableArchitecture,
        layered_arch: LayeredArchitecture,
        upper_layer: str,
    ) -> None:
        (
            LayerRule()
            .based_on(layered_arch)
            .layers_that()
            .are_named("services")
            .should_not()
            .access_layers_that()
            .are_named(upper_layer)
            .assert_applies(evaluable)
        )

    def test_clients_layer_must_not_access_routers_layer(
        self,
        evaluable: EvaluableArchitecture,
        layered_arch: LayeredArchitecture,
    ) -> None:
        (
            LayerRule()
            .based_on(layered_arch)
            .layers_that()
            .are_named("clients")
            .should_not()
            .access_layers_that()
            .are_named("routers")
            .assert_applies(evaluable)
        )
