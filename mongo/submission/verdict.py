'''
Typed view of a judge result and its permission-filtered projection.

A result tree nests as root -> tabs -> contexts -> testcases -> tests.
Every level below the root may carry a `permission` tag and every level
may carry `messages`; a message is either plain text or a dict that may
carry its own `permission` tag. Anything without a tag is visible to
students.
'''
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Union

from ..engine import Role

__all__ = [
    'Permission',
    'NodeKind',
    'ViewerRole',
    'Message',
    'VerdictNode',
    'ResultProjector',
    'role_for',
]


class Permission(str, Enum):
    STUDENT = 'student'
    STAFF = 'staff'


class NodeKind(Enum):
    ROOT = 'root'
    TAB = 'tab'
    CONTEXT = 'context'
    TESTCASE = 'testcase'
    TEST = 'test'

    @property
    def child(self) -> Optional['NodeKind']:
        return _CHILD_KIND.get(self)

    @property
    def children_key(self) -> Optional[str]:
        if self is NodeKind.TESTCASE:
            return 'tests'
        if self is NodeKind.TEST:
            return None
        return 'groups'


_CHILD_KIND = {
    NodeKind.ROOT: NodeKind.TAB,
    NodeKind.TAB: NodeKind.CONTEXT,
    NodeKind.CONTEXT: NodeKind.TESTCASE,
    NodeKind.TESTCASE: NodeKind.TEST,
}


class ViewerRole(Enum):
    ADMIN = 'admin'
    STAFF = 'staff'
    STUDENT = 'student'

    @property
    def levels(self) -> FrozenSet[str]:
        if self is ViewerRole.STUDENT:
            return frozenset({Permission.STUDENT.value})
        return frozenset({Permission.STUDENT.value, Permission.STAFF.value})


@dataclass
class Message:
    raw: Union[str, Dict[str, Any]]

    @property
    def permission(self) -> Optional[str]:
        if isinstance(self.raw, dict):
            return self.raw.get('permission')
        return None

    def visible_to(self, levels: FrozenSet[str]) -> bool:
        return self.permission is None or self.permission in levels


@dataclass
class VerdictNode:
    kind: NodeKind
    permission: Optional[str] = None
    # None means the key was absent, so it stays absent on the way out
    messages: Optional[List[Message]] = None
    children: Optional[List['VerdictNode']] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        kind: NodeKind = NodeKind.ROOT,
    ) -> 'VerdictNode':
        if not isinstance(data, dict):
            raise ValueError(f'{kind.value} must be an object, got {data!r}')
        data = {**data}
        node = cls(kind=kind, permission=data.pop('permission', None))
        messages = data.pop('messages', None)
        if messages is not None:
            node.messages = [Message(m) for m in messages]
        key = kind.children_key
        if key is not None and data.get(key) is not None:
            node.children = [
                cls.from_dict(child, kind.child) for child in data.pop(key)
            ]
        node.extra = data
        return node

    def to_dict(self) -> Dict[str, Any]:
        ret = {**self.extra}
        if self.permission is not None:
            ret['permission'] = self.permission
        if self.messages is not None:
            ret['messages'] = [m.raw for m in self.messages]
        if self.children is not None:
            ret[self.kind.children_key] = [c.to_dict() for c in self.children]
        return ret

    def visible_to(self, levels: FrozenSet[str]) -> bool:
        return (self.permission or Permission.STUDENT.value) in levels

    def filtered(self, levels: FrozenSet[str]) -> 'VerdictNode':
        '''
        a copy keeping only the children and messages visible at `levels`
        '''
        node = VerdictNode(
            kind=self.kind,
            permission=self.permission,
            extra={**self.extra},
        )
        if self.messages is not None:
            node.messages = [m for m in self.messages if m.visible_to(levels)]
        if self.children is not None:
            node.children = [
                c.filtered(levels) for c in self.children
                if c.visible_to(levels)
            ]
        return node


class ResultProjector:

    def project(
        self,
        tree: Union[str, Dict[str, Any], None],
        role: ViewerRole,
    ) -> Optional[Dict[str, Any]]:
        if not tree:
            return None
        if isinstance(tree, str):
            tree = json.loads(tree)
        if role is ViewerRole.ADMIN:
            return tree
        root = VerdictNode.from_dict(tree)
        return root.filtered(role.levels).to_dict()


def role_for(user, course=None) -> ViewerRole:
    if user.role == Role.ADMIN:
        return ViewerRole.ADMIN
    if user.role == Role.STAFF:
        return ViewerRole.STAFF
    if course and course.is_admin(user):
        return ViewerRole.STAFF
    return ViewerRole.STUDENT
