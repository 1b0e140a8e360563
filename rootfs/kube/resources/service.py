from kube.resources import Resource


class Service(Resource):
    short_name = 'svc'
    plural = 'services'
