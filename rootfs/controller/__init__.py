"""
The **controller** Django project drives servers.com L7 load balancers from the
Gateway API resources of a Kubernetes cluster.
"""

__version__ = '0.1.0'
