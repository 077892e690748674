"""Swahili reply templates."""

from datetime import datetime, timezone
from typing import Optional

from kijumbe.schemas.profile import (
    ContributionRecord,
    GroupSummary,
    Role,
    TransactionSummary,
    UserProfile,
)
from kijumbe.services.parsing import format_tzs

DIVIDER = "*═══════════════*"
BACK_TO_MENU = "💬 Andika chochote kurudi kwenye menyu kuu"

MSG_ERROR = "Samahani, kuna tatizo. Tafadhali jaribu tena baada ya muda au wasiliana na admin."
MSG_TEXT_ONLY = "📝 Samahani, kwa sasa tunapokea ujumbe wa maandishi tu. Andika *menu* kuona huduma."

MSG_WELCOME = (
    "🎉 Karibu kwenye Kijumbe Rotational Savings!\n\n"
    "🏦 Tumeunda mfumo wa akiba na mikopo\n"
    "💫 Unaweza kuunda vikundi na kusimamia michango\n\n"
    "Ili kuanza, tunahitaji kujua wewe ni nani:\n\n"
    "1️⃣ Kiongozi - Kuunda na kusimamia vikundi\n"
    "2️⃣ Mwanachama - Kujiunga na vikundi\n\n"
    "Tafadhali chagua 1 au 2"
)

MSG_LEADER_SELECTED = (
    "✅ *Umesajiliwa kama Kiongozi!*\n\n"
    "🎯 Unaweza kuunda vikundi na kusimamia michango\n"
    "📋 Unaweza kuongoza vikundi vingi\n"
    "💼 Una mamlaka ya kusimamia malipo\n\n"
    "Tafadhali andika jina lako kamili:"
)

MSG_MEMBER_SELECTED = (
    "✅ *Umesajiliwa kama Mwanachama!*\n\n"
    "🤝 Unaweza kujiunga na vikundi\n"
    "💰 Unaweza kutoa michango\n"
    "📊 Unaweza kuona historia yako\n\n"
    "Tafadhali andika jina lako kamili:"
)

MSG_INVALID_ROLE = "❌ Chaguo si sahihi. Tafadhali chagua:\n\n*1* - Kiongozi\n*2* - Mwanachama"
MSG_NAME_TOO_SHORT = "❌ Jina ni fupi sana. Tafadhali andika jina lako kamili:"

MSG_ASK_CONTRIBUTION = (
    "💰 *TOA MCHANGO*\n\n"
    "📝 Tafadhali andika kiasi cha mchango wako:\n\n"
    "💡 *Mifano:*\n"
    "• 50000\n"
    "• 100000\n"
    "• 250000\n\n"
    "📊 *Kiwango:* 10,000 - 1,000,000 TZS\n\n"
    "⚠️ Hakikisha kiasi ni sahihi kabla ya kutuma"
)

MSG_INVALID_AMOUNT = (
    "❌ *Kiasi si sahihi*\n\n"
    "Tafadhali andika kiasi sahihi:\n"
    "Mfano: *50000* au *100000*\n\n"
    "Kiwango: 10,000 - 1,000,000 TZS"
)

MSG_NOT_IN_GROUP = (
    "❌ *Hujaungia kikundi bado*\n\n"
    "💡 Jiunge na kikundi kwanza ili kutoa mchango.\n"
    "Chagua *5* kutoka kwenye menyu kujiunga."
)

MSG_LEADER_CONTRIBUTION_NOTICE = (
    "ℹ️ *Kusimamia Michango*\n\n"
    "Kama Kiongozi, michango ya wanachama wako itaonekana hapa baada ya kuthibitishwa.\n"
    "Chagua *1* kuona vikundi vyako na salio lake."
)

MSG_CREATE_GROUP = (
    "🏗️ *UNDA KIKUNDI KIPYA*\n\n"
    "📝 *Hatua ya 1/3: Jina la Kikundi*\n\n"
    "Tafadhali andika jina la kikundi chako:\n\n"
    "💡 *Maelekezo:*\n"
    "• Jina liwe na maana\n"
    "• Angalau herufi 3\n\n"
    "📝 *Mifano:*\n"
    "• Akiba Maendeleo\n"
    "• Tumaini Group"
)

MSG_GROUP_NAME_TOO_SHORT = "❌ Jina la kikundi ni fupi sana. Tafadhali andika jina la kikundi (angalau herufi 3):"
MSG_ASK_MEMBER_COUNT = "👥 Sasa andika idadi ya wanachama (2-50):\nMfano: *10* au *20*"
MSG_INVALID_MEMBER_COUNT = "❌ Idadi si sahihi. Tafadhali andika idadi ya wanachama (2-50):"

MSG_JOIN_GROUP = (
    "🤝 *JIUNGE NA KIKUNDI*\n\n"
    "📝 Tafadhali andika kodi ya kikundi:\n\n"
    "💡 *Maelekezo:*\n"
    "• Omba kodi kutoka kwa Kiongozi\n"
    "• Kodi ina herufi 6 (mfano: ABC123)\n\n"
    "📞 *Kama huna kodi:*\n"
    "Wasiliana na Kiongozi wa kikundi kupata kodi."
)

MSG_INVALID_CODE = "❌ Kodi si sahihi. Kodi ina herufi na namba tu (mfano: ABC123). Tafadhali jaribu tena:"

HELP_TOPICS = {
    "1": (
        "👥 *Vikundi*\n\n"
        "• Kiongozi anaunda kikundi na kupata kodi ya herufi 6\n"
        "• Wanachama wanajiunga kwa kutumia kodi hiyo\n"
        "• Kila kikundi kina kiasi cha mchango wa kila mwezi"
    ),
    "2": (
        "💰 *Michango*\n\n"
        "• Andika *toa 50000* kutoa mchango moja kwa moja\n"
        "• Kiwango: 10,000 - 1,000,000 TZS\n"
        "• Kiongozi anahakiki mchango kabla salio kusasishwa"
    ),
    "3": (
        "👤 *Akaunti*\n\n"
        "• *salio* - kuona salio lako\n"
        "• *historia* - miamala ya hivi karibuni\n"
        "• *status* - hali ya akaunti yako"
    ),
}


def _date(value: Optional[datetime]) -> str:
    return (value or datetime.now(timezone.utc)).strftime("%d/%m/%Y")


def main_menu(user: UserProfile) -> str:
    leader = user.is_leader
    return (
        f"🏠 *MENYU KUU - {user.name}*\n\n"
        f"👤 *Nafasi:* {user.role.label}\n"
        f"📱 *Simu:* {user.phone}\n\n"
        f"{DIVIDER}\n\n"
        "1️⃣ Ona Vikundi Vyangu\n"
        f"2️⃣ {'Kusimamia Michango' if leader else 'Toa Mchango'}\n"
        "3️⃣ Ona Salio Langu\n"
        "4️⃣ Historia ya Miamala\n"
        f"5️⃣ {'Unda Kikundi' if leader else 'Jiunge na Kikundi'}\n"
        "6️⃣ Mipangilio\n"
        "7️⃣ Msaada\n"
        "0️⃣ Rudisha Menyu\n\n"
        f"{DIVIDER}\n\n"
        "💡 Andika namba ya chaguo au *menu* kurudi hapa"
    )


def registration_complete(name: str, phone: str, role: Role) -> str:
    return (
        f"🎉 *Usajili umekamilika, {name}!*\n\n"
        f"📱 Simu: {phone}\n"
        f"👤 Nafasi: {role.label}\n\n"
        "✨ Sasa unaweza kutumia huduma zetu!"
    )


def help_menu(user: UserProfile, support_phone: str, support_email: str, website: str) -> str:
    groups_line = "Unda na simamia vikundi" if user.is_leader else "Jiunge na vikundi kwa kodi"
    return (
        "📚 *MSAADA WA KIJUMBE*\n\n"
        f"👋 Habari {user.name}!\n\n"
        "🔧 *Jinsi ya Kutumia:*\n"
        "• Tumia namba za menyu kuchagua\n"
        "• Andika \"menu\" kurudi kwenye menyu kuu\n\n"
        f"👥 *Vikundi:* {groups_line}\n\n"
        "📖 *Chagua mada kwa maelezo zaidi:*\n"
        "1️⃣ Vikundi\n"
        "2️⃣ Michango\n"
        "3️⃣ Akaunti\n\n"
        "📞 *Msaada Zaidi:*\n"
        f"• WhatsApp: {support_phone}\n"
        f"• Email: {support_email}\n"
        f"• Tovuti: {website}"
    )


def contribution_success(user: UserProfile, record: ContributionRecord) -> str:
    return (
        "✅ *MCHANGO UMEWEKWA!*\n\n"
        f"👤 *Mwanachama:* {user.name}\n"
        f"🏆 *Kikundi:* {record.group_name}\n"
        f"💰 *Kiasi:* {format_tzs(record.amount)}\n"
        "📊 *Status:* Inasubiri uthibitisho\n"
        f"🔗 *ID:* {record.reference}\n\n"
        "📱 *Hatua ijayo:*\n"
        "• Kiongozi atahakiki mchango\n"
        "• Utapokea ujumbe wa uthibitisho\n\n"
        "🙏 *Asante kwa mchango wako!*"
    )


def group_name_accepted(name: str) -> str:
    return (
        f"📝 *Jina la Kikundi:* {name}\n\n"
        "💰 Sasa andika kiasi cha mchango wa kila mwezi (TZS):\n"
        "Mfano: *50000* au *100000*"
    )


def group_created(group: GroupSummary, leader: UserProfile) -> str:
    return (
        "🎉 *KIKUNDI KIMEUNDWA!*\n\n"
        f"🏆 *Jina:* {group.name}\n"
        f"📊 *ID/Kodi:* {group.code}\n"
        f"💰 *Mchango wa Kila Mwezi:* {format_tzs(group.contribution_amount)}\n"
        f"👥 *Idadi ya Wanachama:* {group.max_members}\n"
        f"👤 *Kiongozi:* {leader.name}\n\n"
        "📱 *Kodi ya Kujiunga:*\n"
        f"Waambie wanachama watumie kodi: *{group.code}*\n\n"
        "✨ *Hongera! Sasa unaweza kuongoza kikundi chako.*"
    )


def group_joined(group: GroupSummary, member_number: int) -> str:
    return (
        "🎉 *UMEJIUNGA NA KIKUNDI!*\n\n"
        f"🏆 *Kikundi:* {group.name}\n"
        f"👤 *Member Number:* #{member_number}\n"
        f"💰 *Mchango wa Kila Mwezi:* {format_tzs(group.contribution_amount)}\n"
        f"👑 *Kiongozi:* {group.leader_name or '-'}\n"
        f"👥 *Wanachama:* {group.current_members}/{group.max_members}\n\n"
        "✨ *Hongera! Sasa unaweza kuanza kutoa michango.*"
    )


def group_not_found(code: str) -> str:
    return (
        "❌ *Kikundi hakikupatikana*\n\n"
        f"🔍 Kodi: {code}\n\n"
        "💡 Hakikisha kodi ni sahihi na kikundi bado kipo.\n"
        "📞 Wasiliana na Kiongozi kwa msaada."
    )


def already_member(group: GroupSummary) -> str:
    return (
        "ℹ️ *Tayari ni mwanachama*\n\n"
        f"🏆 Kikundi: {group.name}\n"
        f"👤 Member #{group.member_number}\n\n"
        "✅ Unaweza kuanza kutoa michango."
    )


def group_full(group: GroupSummary) -> str:
    return (
        "❌ *Kikundi kimejaa*\n\n"
        f"🏆 Kikundi: {group.name}\n"
        f"👥 Wanachama: {group.current_members}/{group.max_members}\n\n"
        "💡 Jaribu kikundi kingine au subiri nafasi."
    )


def user_groups(user: UserProfile, groups: list[GroupSummary]) -> str:
    message = "👥 *VIKUNDI VYANGU*\n\n"
    if not groups:
        if user.is_leader:
            message += "📝 Hujunda vikundi bado.\n\n💡 Chagua *5* kutoka kwenye menyu kuunda kikundi."
        else:
            message += "📝 Hujaungia kikundi bado.\n\n💡 Chagua *5* kutoka kwenye menyu kujiunga na kikundi."
        return f"{message}\n\n{DIVIDER}\n\n{BACK_TO_MENU}"

    if user.is_leader:
        message += f"🏆 *Una vikundi {len(groups)} kama Kiongozi:*\n\n"
    else:
        message += f"🤝 *Una vikundi {len(groups)} kama Mwanachama:*\n\n"
    for index, group in enumerate(groups, start=1):
        message += f"{index}. *{group.name}*\n"
        message += f"   📊 ID: {group.code}\n"
        if user.is_leader:
            message += f"   💰 Jumla: {format_tzs(group.balance)}\n"
            message += f"   👥 Wanachama: {group.current_members}/{group.max_members}\n\n"
        else:
            message += f"   👤 Member #{group.member_number}\n"
            message += f"   💰 Salio: {format_tzs(group.balance)}\n\n"
    return f"{message}{DIVIDER}\n\n{BACK_TO_MENU}"


def user_balance(user: UserProfile, groups: list[GroupSummary]) -> str:
    message = "💰 *SALIO LANGU*\n\n"
    message += "👑 *Kama Kiongozi:*\n\n" if user.is_leader else "🤝 *Kama Mwanachama:*\n\n"
    if not groups:
        message += "📝 Huna vikundi bado.\n" if user.is_leader else "📝 Hujaungia kikundi bado.\n"
    for index, group in enumerate(groups, start=1):
        message += f"{index}. *{group.name}*\n   💰 {format_tzs(group.balance)}\n\n"
    total = sum(group.balance for group in groups)
    return (
        f"{message}{DIVIDER}\n\n"
        f"💵 *JUMLA YA SALIO:* {format_tzs(total)}\n\n"
        f"📅 *Imesasishwa:* {_date(None)}\n\n"
        f"{BACK_TO_MENU}"
    )


STATUS_ICONS = {"completed": "✅", "pending": "⏳"}


def transaction_history(transactions: list[TransactionSummary]) -> str:
    message = "📊 *HISTORIA YA MIAMALA*\n\n"
    if not transactions:
        message += "📝 Huna miamala bado.\n\n💡 Anza kutoa michango ili kuona historia.\n\n"
    else:
        message += f"📋 *Miamala ya hivi karibuni ({len(transactions)}):*\n\n"
        for item in transactions:
            icon = STATUS_ICONS.get(item.status, "❌")
            message += f"{icon} *{item.type.upper()}*\n"
            message += f"   💰 {format_tzs(item.amount)}\n"
            message += f"   📅 {_date(item.created_at)}\n"
            message += f"   📊 {item.status}\n\n"
    return f"{message}{DIVIDER}\n\n{BACK_TO_MENU}"


def user_status(user: UserProfile, groups: list[GroupSummary], transactions: list[TransactionSummary]) -> str:
    pending = sum(1 for item in transactions if item.status == "pending")
    return (
        "📈 *HALI YAKO*\n\n"
        f"👤 *Jina:* {user.name}\n"
        f"🎭 *Nafasi:* {user.role.label}\n"
        f"👥 *Vikundi:* {len(groups)}\n"
        f"💰 *Jumla ya Salio:* {format_tzs(sum(group.balance for group in groups))}\n"
        f"⏳ *Michango inayosubiri:* {pending}\n\n"
        f"{DIVIDER}\n\n"
        f"{BACK_TO_MENU}"
    )


def user_settings(user: UserProfile) -> str:
    return (
        "⚙️ *MIPANGILIO*\n\n"
        "👤 *Taarifa za Mtumiaji:*\n"
        f"• Jina: {user.name}\n"
        f"• Simu: {user.phone}\n"
        f"• Nafasi: {user.role.label}\n"
        f"• Tarehe ya Kujiunga: {_date(user.created_at)}\n\n"
        "📱 *Mipangilio ya WhatsApp:*\n"
        "• Arifa: Zimewashwa\n"
        "• Lugha: Kiswahili\n\n"
        f"{BACK_TO_MENU}"
    )
