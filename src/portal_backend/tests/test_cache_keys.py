"""
Tests for cache key construction and the patterns used to invalidate them.
"""

from portal_backend.cache import keys
from portal_backend.cache.hybrid import glob_to_regex
from portal_backend.interface.users import UserStatus


class TestListKeys:
    """Equal filters produce equal keys"""

    def test_defaults(self):
        assert keys.users_list_key() == "users:list:page:1:limit:50"

    def test_search_is_normalized(self):
        assert keys.users_list_key(search="  John ") == keys.users_list_key(search="john")
        assert keys.users_list_key(search="john") == "users:list:page:1:limit:50:search:john"

    def test_empty_filters_are_omitted(self):
        assert keys.users_list_key(search="", gender=None, status="  ") == keys.users_list_key()

    def test_booleans_and_enums(self):
        key = keys.users_list_key(is_active=False, is_verified=True, status=UserStatus.active)
        assert key == "users:list:page:1:limit:50:status:ACTIVE:is_active:false:is_verified:true"

    def test_segment_order_is_fixed(self):
        a = keys.users_list_key(status="ACTIVE", gender="female", auth_type="EMAIL")
        b = keys.users_list_key(gender="female", auth_type="EMAIL", status="ACTIVE")
        assert a == b
        assert a.index("auth_type") < a.index("status") < a.index("gender")

    def test_notifications_key_includes_scope(self):
        assert keys.notifications_list_key() == (
            "notifications:user:all:status:all:type:all:priority:all:limit:50:offset:0"
        )
        assert keys.notifications_list_key(user_id="u1", status="unread").startswith(
            "notifications:user:u1:status:unread"
        )

    def test_activity_key(self):
        key = keys.activity_logs_key(user_id="u1", level="ERROR", search=" Login ", limit=10)
        assert key == "activity:logs:user:u1:level:ERROR:search:login:limit:10:offset:0"


class TestPatterns:
    """Invalidation patterns cover exactly the keys they should"""

    def test_users_list_pattern(self):
        regex = glob_to_regex(keys.users_list_pattern())
        assert regex.match(keys.users_list_key(search="x"))
        assert not regex.match(keys.user_key("1"))

    def test_user_permissions_pattern(self):
        regex = glob_to_regex(keys.user_permissions_pattern())
        assert regex.match(keys.user_permissions_key("1"))
        assert regex.match(keys.user_permission_details_key("1"))
        assert regex.match(keys.user_permissions_response_key("1"))
        assert not regex.match(keys.user_groups_key("1"))
        assert not regex.match(keys.user_key("1"))

    def test_media_user_pattern(self):
        regex = glob_to_regex(keys.media_user_pattern("u1"))
        assert regex.match(keys.media_list_key("u1", folder="docs"))
        assert regex.match(keys.media_folders_key("u1"))
        assert regex.match(keys.media_statistics_key("u1"))
        assert not regex.match(keys.media_list_key("u2"))

    def test_account_share_pattern(self):
        regex = glob_to_regex(keys.account_shares_user_pattern("u1"))
        assert regex.match(keys.account_shares_key("owned", "u1"))
        assert regex.match(keys.account_shares_key("invitations:sent:all", "u1"))
        assert not regex.match(keys.account_shares_key("owned", "u2"))
