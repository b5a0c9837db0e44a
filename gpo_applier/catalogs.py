# catalogs.py
# 內建目錄：Defender、防火牆、BitLocker、稽核、VDI Agent 強化
# 每項設定 = (登錄機碼, 值名稱, 值, 適用條件)
from .catalog import EnumTag, PolicyCatalog, Setting, always, unless, when

EPHEMERAL = "isEphemeralTarget"
DOMAIN_CONTROLLER = "isDomainController"

_DEFENDER = "HKLM\\SOFTWARE\\Policies\\Microsoft\\Windows Defender"
_FIREWALL = "HKLM\\SOFTWARE\\Policies\\Microsoft\\WindowsFirewall"
_FVE = "HKLM\\SOFTWARE\\Policies\\Microsoft\\FVE"
_EVENTLOG = "HKLM\\SOFTWARE\\Policies\\Microsoft\\Windows\\EventLog"
_TS = "HKLM\\SOFTWARE\\Policies\\Microsoft\\Windows NT\\Terminal Services"

# BitLocker 加密演算法
XTS_AES_128 = EnumTag("XtsAes128", 6)
XTS_AES_256 = EnumTag("XtsAes256", 7)
AES_CBC_256 = EnumTag("AesCbc256", 4)

# 雲端保護等級 (MpCloudBlockLevel)
CLOUD_BLOCK_HIGH = EnumTag("High", 2)


def _defender():
    entries = [
        Setting(_DEFENDER, "DisableAntiSpyware", 0, always()),
        Setting(_DEFENDER + "\\Real-Time Protection", "DisableRealtimeMonitoring", 0, always()),
        Setting(_DEFENDER + "\\Real-Time Protection", "DisableBehaviorMonitoring", 0, always()),
        Setting(_DEFENDER + "\\Real-Time Protection", "DisableOnAccessProtection", 0, always()),
        Setting(_DEFENDER + "\\Real-Time Protection", "DisableIOAVProtection", 0, always()),
        Setting(_DEFENDER + "\\Real-Time Protection", "DisableScanOnRealtimeEnable", 0, always()),
        Setting(_DEFENDER + "\\Spynet", "SpynetReporting", 2, always()),
        Setting(_DEFENDER + "\\Spynet", "SubmitSamplesConsent", 1, always()),
        Setting(_DEFENDER + "\\MpEngine", "MpCloudBlockLevel", CLOUD_BLOCK_HIGH, always()),
        Setting(_DEFENDER + "\\Scan", "DisableRemovableDriveScanning", 0, always()),
        # 持續性主機：排程完整掃描
        Setting(_DEFENDER + "\\Scan", "DisableCatchupFullScan", 0, unless(EPHEMERAL)),
        # 非持續性 VDI：閒置時才掃描、隨機化排程、共用特徵碼
        Setting(_DEFENDER + "\\Scan", "ScanOnlyIfIdle", 1, when(EPHEMERAL)),
        Setting(_DEFENDER + "\\Scan", "DisableCatchupQuickScan", 1, when(EPHEMERAL)),
        Setting(_DEFENDER, "RandomizeScheduleTaskTimes", 1, when(EPHEMERAL)),
        Setting(_DEFENDER + "\\Signature Updates", "SharedSignatureRoot",
                "\\\\fileserver\\wdav-update", when(EPHEMERAL)),
    ]
    return PolicyCatalog.build("defender", entries, "Microsoft Defender Antivirus real-time and cloud protection")


def _firewall():
    entries = []
    for profile in ("DomainProfile", "PrivateProfile", "PublicProfile"):
        key = f"{_FIREWALL}\\{profile}"
        entries += [
            Setting(key, "EnableFirewall", 1, always()),
            Setting(key, "DefaultInboundAction", 1, always()),
            Setting(key, "DefaultOutboundAction", 0, always()),
            Setting(key, "DisableNotifications", 1, always()),
            Setting(key + "\\Logging", "LogDroppedPackets", 1, always()),
            Setting(key + "\\Logging", "LogSuccessfulConnections", 1, always()),
            Setting(key + "\\Logging", "LogFileSize", 16384, always()),
            Setting(key + "\\Logging", "LogFilePath",
                    f"%systemroot%\\system32\\logfiles\\firewall\\{profile.lower()}.log", always()),
        ]
    # 公用設定檔不允許本機規則合併
    entries.append(Setting(_FIREWALL + "\\PublicProfile", "AllowLocalPolicyMerge", 0, always()))
    return PolicyCatalog.build("firewall", entries, "Windows Defender Firewall profiles and logging")


def _bitlocker():
    # 非持續性 VDI 不做磁碟加密
    entries = [
        Setting(_FVE, "EncryptionMethodWithXtsOs", XTS_AES_256, unless(EPHEMERAL)),
        Setting(_FVE, "EncryptionMethodWithXtsFdv", XTS_AES_256, unless(EPHEMERAL)),
        Setting(_FVE, "EncryptionMethodWithXtsRdv", AES_CBC_256, unless(EPHEMERAL)),
        Setting(_FVE, "UseAdvancedStartup", 1, unless(EPHEMERAL)),
        Setting(_FVE, "EnableBDEWithNoTPM", 0, unless(EPHEMERAL)),
        Setting(_FVE, "UseTPM", 2, unless(EPHEMERAL)),
        Setting(_FVE, "UseTPMPIN", 1, unless(EPHEMERAL)),
        Setting(_FVE, "MinimumPIN", 8, unless(EPHEMERAL)),
        Setting(_FVE, "OSRecovery", 1, unless(EPHEMERAL)),
        Setting(_FVE, "OSActiveDirectoryBackup", 1, unless(EPHEMERAL)),
        Setting(_FVE, "OSRequireActiveDirectoryBackup", 1, unless(EPHEMERAL)),
        Setting(_FVE, "OSHideRecoveryPage", 1, unless(EPHEMERAL)),
        Setting(_FVE, "RDVDenyWriteAccess", 1, unless(EPHEMERAL)),
    ]
    return PolicyCatalog.build("bitlocker", entries, "BitLocker drive encryption for persistent machines")


def _audit():
    entries = [
        Setting("HKLM\\SYSTEM\\CurrentControlSet\\Control\\Lsa", "SCENoApplyLegacyAuditPolicy", 1, always()),
        Setting("HKLM\\SOFTWARE\\Microsoft\\Windows\\CurrentVersion\\Policies\\System\\Audit",
                "ProcessCreationIncludeCmdLine_Enabled", 1, always()),
        Setting("HKLM\\SOFTWARE\\Policies\\Microsoft\\Windows\\PowerShell\\ScriptBlockLogging",
                "EnableScriptBlockLogging", 1, always()),
        Setting("HKLM\\SOFTWARE\\Policies\\Microsoft\\Windows\\PowerShell\\ModuleLogging",
                "EnableModuleLogging", 1, always()),
        Setting(_EVENTLOG + "\\Security", "MaxSize", 1048576, always()),
        Setting(_EVENTLOG + "\\Security", "Retention", "0", always()),
        Setting(_EVENTLOG + "\\System", "MaxSize", 262144, always()),
        Setting(_EVENTLOG + "\\Application", "MaxSize", 262144, always()),
        # 網域控制站的安全性日誌量大，加大上限
        Setting(_EVENTLOG + "\\Security", "MaxSize", 4194304, when(DOMAIN_CONTROLLER)),
        # 持續性主機才保留本機 PowerShell transcript；VDI 由 SIEM 收集
        Setting("HKLM\\SOFTWARE\\Policies\\Microsoft\\Windows\\PowerShell\\Transcription",
                "EnableTranscripting", 1, unless(EPHEMERAL)),
    ]
    return PolicyCatalog.build("audit", entries, "Advanced audit policy, PowerShell logging and event log sizing")


def _vdi_agent():
    entries = [
        Setting(_TS, "fDisableCdm", 1, always()),
        Setting(_TS, "fDisableClip", 1, always()),
        Setting(_TS, "fDisableCcm", 1, always()),
        Setting(_TS, "fDisableLPT", 1, always()),
        Setting(_TS, "fDisablePNPRedir", 1, always()),
        Setting(_TS, "fDisableCameraRedir", 1, always()),
        Setting(_TS, "fPromptForPassword", 1, always()),
        Setting(_TS, "fEncryptRPCTraffic", 1, always()),
        Setting(_TS, "MinEncryptionLevel", 3, always()),
        Setting(_TS, "SecurityLayer", 2, always()),
        Setting(_TS, "UserAuthentication", 1, always()),
        Setting(_TS, "MaxIdleTime", 900000, always()),
        Setting(_TS, "MaxDisconnectionTime", 60000, always()),
        # 即時複製桌面：登出即清除暫存
        Setting(_TS, "DeleteTempDirsOnExit", 1, when(EPHEMERAL)),
        Setting(_TS, "PerSessionTempDir", 1, when(EPHEMERAL)),
        Setting(_TS, "fResetBroken", 1, when(EPHEMERAL)),
    ]
    return PolicyCatalog.build("vdi-agent", entries, "Remote desktop / VDI agent device redirection hardening")


CATALOGS = {
    "defender": _defender,
    "firewall": _firewall,
    "bitlocker": _bitlocker,
    "audit": _audit,
    "vdi-agent": _vdi_agent,
}


def get_catalog(name):
    try:
        return CATALOGS[name]()
    except KeyError:
        raise KeyError(f"unknown catalog {name!r}; available: {', '.join(sorted(CATALOGS))}") from None
