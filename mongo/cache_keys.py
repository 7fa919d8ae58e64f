'''
Redis key templates of every cached aggregate.

`course_id` and `user_id` resolve to `global` when a value is not scoped
to a course or user.
'''

__all__ = [
    'EXERCISE_USERS_CORRECT',
    'EXERCISE_USERS_TRIED',
    'USER_ATTEMPTED_EXERCISES',
    'USER_CORRECT_EXERCISES',
    'USER_EXERCISE_STATUS',
    'SERIES_COMPLETED',
    'COURSE_CORRECT_SOLUTIONS',
    'PUNCHCARD_MATRIX',
    'HEATMAP_MATRIX',
    'MATRIX',
    'scope',
]

EXERCISE_USERS_CORRECT = 'exercise/{exercise_id}/course/{course_id}/users_correct'
EXERCISE_USERS_TRIED = 'exercise/{exercise_id}/course/{course_id}/users_tried'
USER_ATTEMPTED_EXERCISES = 'user/{user_id}/course/{course_id}/attempted_exercises'
USER_CORRECT_EXERCISES = 'user/{user_id}/course/{course_id}/correct_exercises'
USER_EXERCISE_STATUS = 'user/{user_id}/exercise/{exercise_id}/course/{course_id}/status'
SERIES_COMPLETED = 'series/{series_id}/user/{user_id}/completed'
COURSE_CORRECT_SOLUTIONS = 'course/{course_id}/correct_solutions'

PUNCHCARD_MATRIX = 'course/{course_id}/user/{user_id}/timezone/{timezone}/punchcard_matrix'
HEATMAP_MATRIX = 'course/{course_id}/user/{user_id}/heatmap_matrix'
# other matrix kinds also depend on the series and the deadline
MATRIX = 'course/{course_id}/user/{user_id}/series/{series_id}/deadline/{deadline}/{kind}_matrix'


def scope(value) -> str:
    if value is None:
        return 'global'
    return str(getattr(value, 'pk', value))
