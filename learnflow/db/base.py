# Importing every model here registers the tables on Base.metadata so that
# create_all and Alembic see the full schema and foreign keys resolve.
from learnflow.db.base_class import Base

from learnflow.db.models.user import User
from learnflow.db.models.goal import Goal, GoalStatus
from learnflow.db.models.plan import Plan, Task, AITaskCompletion
from learnflow.db.models.checkin import Checkin
from learnflow.db.models.achievement import Achievement, UserAchievement
