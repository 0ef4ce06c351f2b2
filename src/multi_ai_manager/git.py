"""git 辅助函数"""

import logging
import re
import subprocess
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)


def get_remote_origin_url(path: Union[str, Path] = ".") -> Optional[str]:
    """获取 origin 远程地址，非 git 仓库或无 origin 时返回 None"""
    try:
        result = subprocess.run(
            ['git', '-C', str(path), 'remote', 'get-url', 'origin'],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        logger.debug(f"[git] 获取 origin 失败: {e}")
        return None

    if result.returncode != 0:
        return None
    url = result.stdout.strip()
    return url or None


def generate_config_filename(remote_url: str) -> str:
    """由远程地址生成全局配置文件名（不含扩展名）

    例如:
        git@github.com:owner/repo.git      -> github_com_owner_repo
        https://gitlab.com/group/sub/p.git -> gitlab_com_group_sub_p
    """
    url = remote_url.strip()
    for prefix in ('git@', 'https://', 'http://', 'ssh://'):
        if url.startswith(prefix):
            url = url[len(prefix):]
            break
    if url.endswith('.git'):
        url = url[:-4]

    name = re.sub(r'[^A-Za-z0-9]', '_', url)
    name = re.sub(r'_+', '_', name)
    return name.strip('_')


def _ref_exists(path: Union[str, Path], ref: str) -> bool:
    try:
        result = subprocess.run(
            ['git', '-C', str(path), 'rev-parse', '--verify', '--quiet', f"{ref}^{{commit}}"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        logger.debug(f"[git] 检查引用失败: {ref}: {e}")
        return False
    return result.returncode == 0


def resolve_branch_ref(path: Union[str, Path], branch: str) -> Optional[str]:
    """把分支名解析为 git reset 可用的引用

    本地分支优先，只存在于远程的分支返回 origin/<branch>，都不存在时返回 None。
    """
    if _ref_exists(path, branch):
        return branch
    remote = f"origin/{branch}"
    if _ref_exists(path, remote):
        return remote
    return None
