from .resource import STATICS, resource_control_plugin

__all__ = ['STATICS', 'resource_control_plugin']
