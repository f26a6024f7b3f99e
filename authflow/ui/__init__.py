"""
Headless UI layer: navigation host, error boundary and the app shell.

``AppShell`` lives in ``authflow.ui.app_shell`` and is imported from there;
it depends on the services package, which itself depends on navigation.
"""

from authflow.ui.error_boundary import ErrorBoundary
from authflow.ui.navigation import HistoryNavigator, NavigationHost

__all__ = ["ErrorBoundary", "HistoryNavigator", "NavigationHost"]
