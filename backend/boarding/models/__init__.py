from .sites import Site
from .users import User, UserGroup, UserGroupMembership
from .tours import Tour, TourCompletion, TourTranslation, TourUserGroup
