# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Background sweeps re-scheduling builds which never ran or got stuck. """
