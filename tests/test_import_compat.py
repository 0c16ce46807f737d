import auth.routes
import signin.app
import signin.orchestrator

EXPECTED_EXPORTS = {
    signin.app: ("build_store", "create_sign_in_flow", "create_app", "main"),
    signin.orchestrator: ("SignInFlow",),
    auth.routes: ("SESSION_COOKIE", "RequestNavigator", "SignInRoutes", "snapshot_payload"),
}


def test_export_surface() -> None:
    missing = [
        f"{module.__name__}.{name}"
        for module, names in EXPECTED_EXPORTS.items()
        for name in names
        if not hasattr(module, name)
    ]
    assert missing == []
