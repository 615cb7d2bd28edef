# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_oidc

"""
Shared identity provider values for the test suite.
"""

from collections.abc import Callable

ISSUER = "https://idp.example"
CLIENT_ID = "abc"
CLIENT_SECRET = "xyz"
REDIRECT_URI = "https://rp.example/cb"
NOW = 1_700_000_000

# make_token fixture signature
TokenFactory = Callable[..., str]
