# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""Configuration handler functions."""

import importlib.util
import os

from zig_pkg_checker import logger

DEFAULT_CONFIG_FILE = "/etc/zig-pkg-checker/config.py"
DEFAULT_CONFIG_SECTION = "DevConfiguration"


def _find_config_file():
    config_file = os.environ.get("ZIG_PKG_CHECKER_CONFIG_FILE")
    if config_file:
        return config_file
    if os.path.exists(DEFAULT_CONFIG_FILE):
        return DEFAULT_CONFIG_FILE
    # git checkout
    here = os.path.dirname(os.path.abspath(__file__))
    return os.path.join(os.path.dirname(here), "conf", "config.py")


def _load_config_module(config_file):
    spec = importlib.util.spec_from_file_location("zig_pkg_checker_conf", config_file)
    if spec is None:
        raise ValueError("Can't load configuration from %r" % config_file)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def init_config(app, section=None):
    """ Loads a configuration section into app.config and returns the
    matching Config instance.

    The section is picked from the `section` argument, then from the
    ZIG_PKG_CHECKER_CONFIG_SECTION environment variable, and falls back
    to DevConfiguration.
    """
    config_file = _find_config_file()
    config_module = _load_config_module(config_file)

    section = section or os.environ.get(
        "ZIG_PKG_CHECKER_CONFIG_SECTION", DEFAULT_CONFIG_SECTION)
    try:
        config_section = getattr(config_module, section)
    except AttributeError:
        raise ValueError("Configuration section %r not found in %s" % (
            section, config_file))

    app.config.from_object(config_section)
    return from_app_config(app)


def from_app_config(app):
    """ Create the configuration instance from the values in app.config
    """
    conf = Config()
    for key, value in app.config.items():
        # lower keys
        key = key.lower()
        conf.set_item(key, value)
    return conf


class Config(object):
    """Class representing the zig-pkg-checker configuration."""
    _defaults = {
        'debug': {
            'type': bool,
            'default': False,
            'desc': 'Debug mode'},
        'db': {
            'type': str,
            'default': 'sqlite:///zig_pkg_checker.db',
            'desc': 'RDB URL.'},
        'log_backend': {
            'type': str,
            'default': 'console',
            'desc': 'Log backend'},
        'log_file': {
            'type': str,
            'default': '',
            'desc': 'Path to log file'},
        'log_level': {
            'type': str,
            'default': 'info',
            'desc': 'Log level'},
        'docker_binary': {
            'type': str,
            'default': 'docker',
            'desc': 'Container runtime executable.'},
        'docker_context_dir': {
            'type': str,
            'default': 'docker',
            'desc': 'Directory holding one zig-<version> build context per Zig version.'},
        'image_prefix': {
            'type': str,
            'default': 'zig-checker',
            'desc': 'Name of the per-version images, tagged with the Zig version.'},
        'results_dir': {
            'type': str,
            'default': '/tmp/zig_pkg_checker_results',
            'desc': 'Host directory the containers write their result files to.'},
        'container_results_dir': {
            'type': str,
            'default': '/results',
            'desc': 'Mount point of results_dir inside the containers.'},
        'container_name_prefix': {
            'type': str,
            'default': 'zig-pkg-checker',
            'desc': 'Prefix of the build container names.'},
        'container_label': {
            'type': str,
            'default': 'zig-pkg-checker',
            'desc': 'Label put on build containers, used when pruning them.'},
        'container_memory': {
            'type': str,
            'default': '2g',
            'desc': 'Memory limit of one build container.'},
        'container_cpus': {
            'type': str,
            'default': '2',
            'desc': 'CPU limit of one build container.'},
        'container_timeout': {
            'type': int,
            'default': 3600,
            'desc': 'Seconds a build container may run before it is killed, 0 to disable.'},
        'result_settle_time': {
            'type': float,
            'default': 2.0,
            'desc': 'Seconds to wait for the result file after the container exits.'},
        'result_read_timeout': {
            'type': int,
            'default': 10,
            'desc': 'Seconds to keep retrying when the result file is not there yet.'},
        'max_output_bytes': {
            'type': int,
            'default': 50 * 1024 * 1024,
            'desc': 'Maximum captured stdout/stderr of one container, in bytes.'},
        'max_concurrent_builds': {
            'type': int,
            'default': 0,
            'desc': 'Maximum number of packages building at once, 0 for no limit.'},
        'missing_builds_interval': {
            'type': int,
            'default': 24 * 60 * 60,
            'desc': 'Seconds between two sweeps for packages with missing builds.'},
        'stalled_builds_interval': {
            'type': int,
            'default': 30 * 60,
            'desc': 'Seconds between two sweeps for stalled builds.'},
        'stalled_build_threshold': {
            'type': int,
            'default': 2 * 60 * 60,
            'desc': 'Seconds a build may stay pending before it is considered stalled.'},
        'scheduler_tick': {
            'type': float,
            'default': 10.0,
            'desc': 'Seconds the sweeps sleep between two checks of the running flag.'},
        'host': {
            'type': str,
            'default': '0.0.0.0',
            'desc': 'Server hostname'},
        'port': {
            'type': int,
            'default': 5000,
            'desc': 'Server port'},
    }

    def __init__(self):
        """Initialize the Config object with defaults."""

        for name, values in self._defaults.items():
            self.set_item(name, values['default'])

    def set_item(self, key, value):
        if key == 'set_item' or key.startswith('_'):
            raise Exception("Configuration item's name is not allowed: %s" % key)

        # managed/registered configuration items
        if key in self._defaults:
            # customized check & set if there's a corresponding handler
            setifok_func = '_setifok_{}'.format(key)
            if hasattr(self, setifok_func):
                getattr(self, setifok_func)(value)
                return

            # type conversion for configuration item
            convert = self._defaults[key]['type']
            if convert in [bool, int, float, list, str]:
                try:
                    setattr(self, key, convert(value))
                except (TypeError, ValueError):
                    raise TypeError("Configuration value conversion failed for name: %s" % key)
            # if type is None, do not perform any conversion
            elif convert is None:
                setattr(self, key, value)
            # unknown type/unsupported conversion
            else:
                raise TypeError("Unsupported type %s for configuration item name: %s" % (convert, key))
        # passthrough for unmanaged configuration items
        else:
            # customized check & set if there's a corresponding handler
            setifok_func = '_setifok_{}'.format(key)
            if hasattr(self, setifok_func):
                getattr(self, setifok_func)(value)
            # otherwise just transparently set value for a key
            else:
                setattr(self, key, value)

    def _setifok_db(self, s):
        s = str(s)
        if not s:
            raise ValueError("db needs to be an RDB URL")
        self.db = s

    def _setifok_log_backend(self, s):
        if s is None:
            s = "console"
        elif s not in logger.supported_log_backends():
            raise ValueError("Unsupported log backend")
        self.log_backend = str(s)

    def _setifok_log_file(self, s):
        if s is None:
            self.log_file = ""
        else:
            self.log_file = str(s)

    def _setifok_log_level(self, s):
        level = str(s).lower()
        self.log_level = logger.str_to_log_level(level)

    def _setifok_results_dir(self, s):
        s = str(s)
        if not os.path.isabs(s):
            raise ValueError("results_dir must be an absolute path, got %r" % s)
        self.results_dir = s

    def _setifok_container_timeout(self, i):
        if not isinstance(i, int):
            raise TypeError("container_timeout needs to be an int")
        if i < 0:
            raise ValueError("container_timeout must be >= 0")
        self.container_timeout = i

    def _setifok_max_concurrent_builds(self, i):
        if not isinstance(i, int):
            raise TypeError("max_concurrent_builds needs to be an int")
        if i < 0:
            raise ValueError("max_concurrent_builds must be >= 0")
        self.max_concurrent_builds = i

    def _setifok_scheduler_tick(self, f):
        f = float(f)
        if f <= 0:
            raise ValueError("scheduler_tick must be > 0")
        self.scheduler_tick = f
