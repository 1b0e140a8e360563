"""
The **gateway** Django app converges servers.com L7 load balancers with the
Gateway API objects of the cluster.
"""
