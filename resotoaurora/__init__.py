"""
Resoto Aurora
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Reconciles Aurora MySQL clusters, their network and their DNS records on AWS.
:copyright: © 2022 Some Engineering Inc.
:license: Apache 2.0, see LICENSE for more details.
"""

__title__ = "resotoaurora"
__description__ = "Reconciles Aurora MySQL clusters, their network and their DNS records on AWS."
__author__ = "Some Engineering Inc."
__license__ = "Apache 2.0"
__copyright__ = "Copyright © 2022 Some Engineering Inc."
__version__ = "3.0.2"
