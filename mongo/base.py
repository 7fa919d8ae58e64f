import logging
from typing import Any, Dict

from flask import current_app, has_app_context

from . import engine

__all__ = ['MongoBase']


class MongoBase:
    '''
    Wrapper around one mongoengine document, kept in `self.obj`.

    Subclasses bind the document class they wrap:

        class Exercise(MongoBase, engine=engine.Exercise):
            ...

    Attributes not defined on the wrapper read through to the document.
    `obj` is None when nothing matched the given key.
    '''
    engine = None
    qs_filter: Dict[str, Any] = {}

    def __init_subclass__(cls, engine=None, **ks):
        super().__init_subclass__(**ks)
        if engine is not None:
            cls.engine = engine

    def __new__(cls, pk, *args, **kwargs):
        new = super().__new__(cls)
        if isinstance(pk, MongoBase):
            pk = pk.obj
        if isinstance(pk, cls.engine):
            new.obj = pk
            return new
        try:
            new.obj = cls.engine.objects(pk=pk, **cls.qs_filter).first()
        except (engine.ValidationError, TypeError, ValueError):
            new.obj = None
        return new

    def __getattr__(self, name: str) -> Any:
        obj = self.__dict__.get('obj')
        if obj is None:
            raise AttributeError(
                f'{type(self).__name__!r} object has no attribute {name!r}')
        return getattr(obj, name)

    def __bool__(self):
        return self.obj is not None and self.obj.pk is not None

    def __eq__(self, other):
        if isinstance(other, MongoBase):
            return type(self) is type(other) and self.pk == other.pk
        return NotImplemented

    def __hash__(self):
        return hash((type(self).__name__, self.pk))

    def __repr__(self):
        return f'{type(self).__name__}({self.pk!r})'

    @property
    def pk(self):
        return None if self.obj is None else self.obj.pk

    @property
    def id(self):
        return self.pk

    @property
    def logger(self) -> logging.Logger:
        if has_app_context():
            return current_app.logger
        return logging.getLogger(type(self).__module__)

    def ref_id(self, field: str):
        '''
        id held by a reference field, without loading the referenced document
        '''
        db_field = self.engine._fields[field].db_field
        return self.obj.to_mongo().get(db_field)

    def reload(self):
        if not self:
            raise engine.DoesNotExist(f'{self}')
        self.obj.reload()
        return self

    def update(self, **ks):
        '''
        update fields by their python name and reload the document
        '''
        if not self:
            raise engine.DoesNotExist(f'{self}')
        self.obj.update(**ks)
        return self.reload()

    def delete(self):
        self.obj.delete()
